"""
Credstore — Password authentication records over a SQL database.

Keeps one credential record per (group, user) pair: a password digest
plus optional full name, email and a challenge question/answer. User
names are unique within their group only.

Backends:
    - sqlite: local database file (default), stdlib sqlite3
    - mysql: networked server, SQLAlchemy over PyMySQL

This is not an authentication protocol. Callers wire authenticate()
into their own login flow.

Usage:
    from credstore import CredentialStore

    with CredentialStore(database_name=".credstore/authen.db", create_if_missing=True) as store:
        store.add_user("staff", "alice", "s3cret", "Alice", "a@example.com", "Pet?", "dog")
        store.authenticate("staff", "alice", "s3cret")  # True
"""

__version__ = "0.1.0"

from .config import StoreConfig, load_config
from .errors import (
    ConfigError,
    ConnectionError,
    ConstraintViolation,
    CredentialStoreError,
    DriverError,
    SchemaError,
)
from .store import Credential, CredentialStore, composite_key

__all__ = [
    "CredentialStore",
    "Credential",
    "StoreConfig",
    "load_config",
    "composite_key",
    "CredentialStoreError",
    "ConfigError",
    "ConnectionError",
    "ConstraintViolation",
    "SchemaError",
    "DriverError",
]
