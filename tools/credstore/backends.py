"""SQL execution layer for the credential store.

Two drivers sit behind the same ``Connection`` interface:

    SQLiteConnection  local database file, stdlib sqlite3
    MySQLConnection   networked server, SQLAlchemy Core over PyMySQL

Statements use named ``:param`` placeholders, which both drivers bind.
Every statement is committed as soon as it has run. Driver exceptions
are translated into the credstore error hierarchy and their text kept
in ``errstr``.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from .config import MYSQL, SQLITE, StoreConfig
from .errors import (
    ConfigError,
    ConnectionError,
    ConstraintViolation,
    CredentialStoreError,
    DriverError,
    SchemaError,
)

logger = logging.getLogger(__name__)

# MySQL server error codes
_ER_NO_SUCH_TABLE = 1146
_CR_SERVER_GONE = 2006
_CR_SERVER_LOST = 2013


@dataclass
class Result:
    """Outcome of one executed statement."""

    rows: list[tuple] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    rowcount: int = -1

    def first(self) -> Optional[tuple]:
        return self.rows[0] if self.rows else None


class Connection(ABC):
    """Database connection held by a CredentialStore."""

    def __init__(self) -> None:
        self._errstr: Optional[str] = None
        self._closed = False

    @property
    def errstr(self) -> Optional[str]:
        """Text of the last driver error, None after a clean statement."""
        return self._errstr

    @property
    def closed(self) -> bool:
        return self._closed

    def execute(self, sql: str, params: Optional[dict[str, Any]] = None) -> Result:
        """Run one parameterized statement and commit it."""
        if self._closed:
            self._errstr = "connection is closed"
            raise ConnectionError("Connection is closed")
        try:
            result = self._execute(sql, params or {})
        except CredentialStoreError as e:
            self._errstr = str(e)
            raise
        self._errstr = None
        return result

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._close()

    @abstractmethod
    def table_names(self) -> list[str]:
        """Names of the tables present in the database."""

    @abstractmethod
    def _execute(self, sql: str, params: dict[str, Any]) -> Result: ...

    @abstractmethod
    def _close(self) -> None: ...


class SQLiteConnection(Connection):
    """Embedded database file. Parent directories are created as needed."""

    def __init__(self, database_name: str, timeout: Optional[float] = None) -> None:
        super().__init__()
        self.database_name = database_name
        try:
            if database_name != ":memory:":
                Path(database_name).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(database_name, timeout=timeout or 5.0)
        except (OSError, sqlite3.Error) as e:
            raise ConnectionError(
                f"Can't connect to SQLite database {database_name}: {e}"
            ) from e

    def _execute(self, sql: str, params: dict[str, Any]) -> Result:
        try:
            cur = self._conn.execute(sql, params)
            rows = [tuple(r) for r in cur.fetchall()]
            columns = [d[0] for d in cur.description] if cur.description else []
            rowcount = cur.rowcount
            if self._conn.in_transaction:
                self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._rollback()
            raise ConstraintViolation(str(e)) from e
        except sqlite3.OperationalError as e:
            self._rollback()
            if "no such table" in str(e):
                raise SchemaError(str(e)) from e
            raise DriverError(str(e)) from e
        except sqlite3.ProgrammingError as e:
            if "closed database" in str(e):
                raise ConnectionError(str(e)) from e
            raise DriverError(str(e)) from e
        except sqlite3.Error as e:
            self._rollback()
            raise DriverError(str(e)) from e
        return Result(rows=rows, columns=columns, rowcount=rowcount)

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.rollback()

    def table_names(self) -> list[str]:
        result = self.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        return [row[0] for row in result.rows]

    def _close(self) -> None:
        self._conn.close()


class MySQLConnection(Connection):
    """Networked MySQL server reached through a SQLAlchemy engine.

    The pymysql dialect connects with the FOUND_ROWS client flag, so an
    UPDATE that matches a row reports it even when no value changed.
    """

    def __init__(
        self,
        database_name: str,
        user: Optional[str] = None,
        password: Optional[str] = None,
        host: Optional[str] = None,
        port: int = 3306,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__()
        self.url = URL.create(
            "mysql+pymysql",
            username=user,
            password=password,
            host=host or "localhost",
            port=port,
            database=database_name,
        )
        connect_args = {}
        if timeout:
            connect_args["connect_timeout"] = math.ceil(timeout)

        self._engine = create_engine(self.url, connect_args=connect_args)
        try:
            self._conn = self._engine.connect()
        except SQLAlchemyError as e:
            self._engine.dispose()
            raise ConnectionError(
                f"Can't connect to MySQL database as "
                f"{self.url.render_as_string(hide_password=True)}: {e}"
            ) from e

    def _execute(self, sql: str, params: dict[str, Any]) -> Result:
        try:
            result = self._conn.execute(text(sql), params)
            if result.returns_rows:
                columns = list(result.keys())
                rows = [tuple(r) for r in result.fetchall()]
            else:
                columns, rows = [], []
            rowcount = result.rowcount
            self._conn.commit()
        except SQLAlchemyError as e:
            self._rollback()
            raise self._translate(e) from e
        return Result(rows=rows, columns=columns, rowcount=rowcount)

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except SQLAlchemyError as e:
            logger.debug(f"Rollback failed: {e}")

    @staticmethod
    def _translate(exc: SQLAlchemyError) -> CredentialStoreError:
        if isinstance(exc, IntegrityError):
            return ConstraintViolation(str(exc.orig))
        if isinstance(exc, DBAPIError):
            code = exc.orig.args[0] if exc.orig is not None and exc.orig.args else None
            if code == _ER_NO_SUCH_TABLE:
                return SchemaError(str(exc.orig))
            if exc.connection_invalidated or code in (_CR_SERVER_GONE, _CR_SERVER_LOST):
                return ConnectionError(str(exc.orig))
            return DriverError(str(exc.orig))
        return DriverError(str(exc))

    def table_names(self) -> list[str]:
        try:
            return list(inspect(self._conn).get_table_names())
        except SQLAlchemyError as e:
            err = self._translate(e)
            self._errstr = str(err)
            raise err from e

    def _close(self) -> None:
        try:
            self._conn.close()
        finally:
            self._engine.dispose()


def connect(config: StoreConfig) -> Connection:
    """Open the connection described by ``config``."""
    if config.backend == SQLITE:
        return SQLiteConnection(config.database_name, timeout=config.connect_timeout)
    if config.backend == MYSQL:
        return MySQLConnection(
            config.database_name,
            user=config.user,
            password=config.password,
            host=config.host,
            port=config.port,
            timeout=config.connect_timeout,
        )
    raise ConfigError(f"Unsupported backend: {config.backend!r}")
