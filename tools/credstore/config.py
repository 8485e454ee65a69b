"""Store configuration.

A ``StoreConfig`` can be built directly, from a dict, or from the
``store`` section of a JSON config file:

    {
        "store": {
            "backend": "sqlite",
            "database_name": ".credstore/authen.db",
            "create_if_missing": true
        }
    }
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from .errors import ConfigError
from .hashing import SCHEMES, SHA1

logger = logging.getLogger(__name__)

SQLITE = "sqlite"
MYSQL = "mysql"
BACKENDS = (SQLITE, MYSQL)

DEFAULT_TABLE = "authentication"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Option names used by older deployments of the same table layout.
_LEGACY_KEYS = {
    "dbtype": "backend",
    "dbname": "database_name",
    "authen_table": "table_name",
    "create": "create_if_missing",
    "dbuser": "user",
    "dbpass": "password",
    "dbhost": "host",
}


@dataclass
class StoreConfig:
    """Connection and table settings for a CredentialStore.

    Args:
        database_name: File path (sqlite) or database name (mysql).
        backend: "sqlite" (default) or "mysql".
        table_name: Credential table, defaults to "authentication".
        create_if_missing: Create the table when it does not exist.
        user, password, host, port: MySQL credentials and location.
        connect_timeout: Seconds to wait when opening the connection.
        password_scheme: "sha1" (default) or "bcrypt".
    """

    database_name: str
    backend: str = SQLITE
    table_name: str = DEFAULT_TABLE
    create_if_missing: bool = False
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    host: Optional[str] = None
    port: int = 3306
    connect_timeout: Optional[float] = None
    password_scheme: str = SHA1

    def __post_init__(self) -> None:
        if not self.database_name:
            raise ConfigError("database_name is required")

        backend = str(self.backend or SQLITE).lower()
        if backend not in BACKENDS:
            raise ConfigError(f"Unsupported backend: {self.backend!r}")
        self.backend = backend

        self.table_name = self.table_name or DEFAULT_TABLE
        if not _IDENTIFIER_RE.match(self.table_name):
            raise ConfigError(f"Invalid table name: {self.table_name!r}")

        if self.password_scheme not in SCHEMES:
            raise ConfigError(f"Unknown password scheme: {self.password_scheme!r}")

        if self.connect_timeout is not None and not self.connect_timeout > 0:
            raise ConfigError(
                f"connect_timeout must be positive, got {self.connect_timeout!r}"
            )

        self.create_if_missing = bool(self.create_if_missing)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreConfig":
        """Build a config from a plain dict, accepting legacy option names."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _LEGACY_KEYS.get(key, key)
            if name not in known:
                logger.warning(f"Ignoring unknown store option '{key}'")
                continue
            kwargs[name] = value

        if "database_name" not in kwargs:
            raise ConfigError("database_name is required")
        return cls(**kwargs)


def load_config(config_path: str | Path, section: str = "store") -> StoreConfig:
    """Load a StoreConfig from a JSON file.

    Uses the named section when present, otherwise the whole document.
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config not found at {path}")

    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config at {path} must be a JSON object")

    store_data = data.get(section, data)
    if not isinstance(store_data, dict):
        raise ConfigError(f"Config section '{section}' must be a JSON object")
    return StoreConfig.from_dict(store_data)
