"""Credential store: grouped user records with password digests.

One row per (group, user) pair. Uniqueness is enforced by the ``gukey``
column, the composite key ``group|user``; group and user names may not
contain the separator, so distinct pairs never share a key.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, astuple, dataclass
from typing import Any, Optional

from . import hashing
from .backends import Connection, connect
from .config import StoreConfig
from .errors import ConstraintViolation, CredentialStoreError, SchemaError

logger = logging.getLogger(__name__)

SEPARATOR = "|"

COLUMNS = (
    "groop",
    "user",
    "password",
    "fullname",
    "email",
    "question",
    "answer",
    "created",
    "modified",
    "gukey",
)

_SCHEMA = """
CREATE TABLE {table} (
  groop VARCHAR(15), user VARCHAR(30), password VARCHAR(60),
  fullname VARCHAR(40), email VARCHAR(40), question VARCHAR(120),
  answer VARCHAR(80), created VARCHAR(12), modified VARCHAR(12),
  gukey VARCHAR(46) UNIQUE
)
"""

_LIMITS = {
    "groop": 15,
    "user": 30,
    "fullname": 40,
    "email": 40,
    "question": 120,
    "answer": 80,
}


def _name_ok(value: Any, limit: int) -> bool:
    return (
        isinstance(value, str)
        and 0 < len(value) <= limit
        and SEPARATOR not in value
    )


def composite_key(group: str, user: str) -> str:
    """Return the unique key for a (group, user) pair.

    Raises ValueError if either name is empty, too long for its column,
    or contains the separator.
    """
    if not _name_ok(group, _LIMITS["groop"]):
        raise ValueError(f"Invalid group name: {group!r}")
    if not _name_ok(user, _LIMITS["user"]):
        raise ValueError(f"Invalid user name: {user!r}")
    return f"{group}{SEPARATOR}{user}"


def _to_epoch(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


@dataclass
class Credential:
    """One stored credential record."""

    group: str
    user: str
    password_digest: str
    fullname: Optional[str]
    email: Optional[str]
    question: Optional[str]
    answer: Optional[str]
    created: Optional[int]
    modified: Optional[int]
    composite_key: str


class CredentialStore:
    """Password authentication records kept in a SQL table.

    Construct with a StoreConfig or with the same fields as keywords:

        store = CredentialStore(database_name="authen.db", create_if_missing=True)
        store.add_user("staff", "alice", "s3cret", "Alice", "a@example.com",
                       "First pet?", "dog")
        store.authenticate("staff", "alice", "s3cret")  # True

    The connection is opened here and held until close(). Use the store as
    a context manager to release it deterministically.
    """

    def __init__(self, config: Optional[StoreConfig] = None, **kwargs: Any) -> None:
        if config is None:
            config = StoreConfig(**kwargs)
        elif kwargs:
            raise TypeError("Pass either a StoreConfig or keyword options, not both")

        self._config = config
        self._table = config.table_name
        self._scheme = config.password_scheme
        self._conn: Connection = connect(config)
        try:
            self._ensure_table()
        except BaseException:
            self._conn.close()
            raise
        logger.info(
            f"CredentialStore opened: {config.backend}:{config.database_name} "
            f"table={self._table}"
        )

    @classmethod
    def from_config(cls, config: StoreConfig) -> "CredentialStore":
        return cls(config)

    @property
    def table_name(self) -> str:
        return self._table

    @property
    def backend(self) -> str:
        return self._config.backend

    def _ensure_table(self) -> None:
        if self._table in self._conn.table_names():
            return
        if not self._config.create_if_missing:
            logger.warning(
                f"Table '{self._table}' not found and create_if_missing is off"
            )
            return
        try:
            self._conn.execute(_SCHEMA.format(table=self._table))
        except CredentialStoreError as e:
            logger.error(f"Could not create table '{self._table}': {e}")
            raise SchemaError(f"Could not create table '{self._table}': {e}") from e
        logger.info(f"Created credential table '{self._table}'")

    def _now(self) -> int:
        return int(time.time())

    def _fetch_row(self, group: str, user: str) -> Optional[tuple]:
        result = self._conn.execute(
            f"SELECT {', '.join(COLUMNS)} FROM {self._table} "
            "WHERE groop = :groop AND user = :user",
            {"groop": group, "user": user},
        )
        return result.first()

    @staticmethod
    def _fields_fit(**values: Optional[str]) -> bool:
        for name, value in values.items():
            if value is None:
                continue
            if not isinstance(value, str) or len(value) > _LIMITS[name]:
                logger.warning(f"Value for '{name}' exceeds {_LIMITS[name]} characters")
                return False
        return True

    def _update(self, group: str, user: str, values: dict[str, Any]) -> bool:
        """Assign ``values`` plus a fresh modified time to one record.

        Returns True iff exactly one row was affected.
        """
        assignments = dict(values)
        assignments["modified"] = self._now()
        unknown = set(assignments) - set(COLUMNS)
        if unknown:
            raise ValueError(f"Unknown columns: {sorted(unknown)}")

        set_clause = ", ".join(f"{column} = :{column}" for column in assignments)
        params = dict(assignments)
        params.update(where_groop=group, where_user=user)
        result = self._conn.execute(
            f"UPDATE {self._table} SET {set_clause} "
            "WHERE groop = :where_groop AND user = :where_user",
            params,
        )
        updated = result.rowcount == 1
        if updated:
            logger.debug(f"Updated {sorted(values)} for {group}/{user}")
        else:
            logger.debug(f"No record updated for {group}/{user}")
        return updated

    def authenticate(self, group: str, user: str, password: str) -> bool:
        """Check ``password`` against the stored digest for (group, user).

        An unknown user is a failed authentication, not an error.
        """
        result = self._conn.execute(
            f"SELECT password FROM {self._table} WHERE groop = :groop AND user = :user",
            {"groop": group, "user": user},
        )
        row = result.first()
        stored = row[0] if row else None
        return hashing.verify_password(password, stored, self._scheme)

    def user_exists(self, group: str, user: str) -> bool:
        """Return True if a record exists for (group, user)."""
        try:
            key = composite_key(group, user)
        except ValueError:
            return False
        result = self._conn.execute(
            f"SELECT password FROM {self._table} WHERE gukey = :gukey",
            {"gukey": key},
        )
        return result.first() is not None

    def add_user(
        self,
        group: str,
        user: str,
        password: str,
        fullname: Optional[str] = None,
        email: Optional[str] = None,
        question: Optional[str] = None,
        answer: Optional[str] = None,
    ) -> bool:
        """Insert a new record.

        Returns False without writing anything when the pair already
        exists, a name is invalid, or a profile field is too long.
        """
        try:
            key = composite_key(group, user)
        except ValueError as e:
            logger.warning(f"Rejected add_user: {e}")
            return False
        if not self._fields_fit(fullname=fullname, email=email, question=question, answer=answer):
            return False
        if self.user_exists(group, user):
            logger.warning(f"User {group}/{user} already exists")
            return False

        now = self._now()
        params = {
            "groop": group,
            "user": user,
            "password": hashing.digest_password(password, self._scheme),
            "fullname": fullname,
            "email": email,
            "question": question,
            "answer": answer,
            "created": now,
            "modified": now,
            "gukey": key,
        }
        try:
            result = self._conn.execute(
                f"INSERT INTO {self._table} ({', '.join(COLUMNS)}) "
                f"VALUES ({', '.join(':' + c for c in COLUMNS)})",
                params,
            )
        except ConstraintViolation:
            logger.warning(f"User {group}/{user} already exists")
            return False

        added = result.rowcount == 1
        if added:
            logger.debug(f"Added user {group}/{user}")
        return added

    def update_user_all(
        self,
        group: str,
        user: str,
        password: str,
        fullname: Optional[str] = None,
        email: Optional[str] = None,
        question: Optional[str] = None,
        answer: Optional[str] = None,
    ) -> bool:
        """Replace password and every profile field; rewrites the composite key."""
        try:
            key = composite_key(group, user)
        except ValueError:
            return False
        if not self._fields_fit(fullname=fullname, email=email, question=question, answer=answer):
            return False
        return self._update(
            group,
            user,
            {
                "password": hashing.digest_password(password, self._scheme),
                "fullname": fullname,
                "email": email,
                "question": question,
                "answer": answer,
                "gukey": key,
            },
        )

    def update_user_password(self, group: str, user: str, password: str) -> bool:
        return self._update(
            group, user, {"password": hashing.digest_password(password, self._scheme)}
        )

    def update_user_fullname(self, group: str, user: str, fullname: Optional[str]) -> bool:
        if not self._fields_fit(fullname=fullname):
            return False
        return self._update(group, user, {"fullname": fullname})

    def update_user_email(self, group: str, user: str, email: Optional[str]) -> bool:
        if not self._fields_fit(email=email):
            return False
        return self._update(group, user, {"email": email})

    def update_user_question_answer(
        self, group: str, user: str, question: Optional[str], answer: Optional[str]
    ) -> bool:
        if not self._fields_fit(question=question, answer=answer):
            return False
        return self._update(group, user, {"question": question, "answer": answer})

    def delete_user(self, group: str, user: str) -> bool:
        """Remove the record for (group, user). Returns True if a row was deleted."""
        result = self._conn.execute(
            f"DELETE FROM {self._table} WHERE groop = :groop AND user = :user",
            {"groop": group, "user": user},
        )
        deleted = result.rowcount > 0
        if deleted:
            logger.debug(f"Deleted user {group}/{user}")
        return deleted

    def count_group(self, group: str) -> int:
        """Number of records in ``group``."""
        result = self._conn.execute(
            f"SELECT COUNT(password) FROM {self._table} WHERE groop = :groop",
            {"groop": group},
        )
        row = result.first()
        count = int(row[0]) if row and row[0] is not None else 0
        return max(count, 0)

    def get_group_members(self, group: str) -> list[str]:
        """User names in ``group``, in the order the database returns them."""
        result = self._conn.execute(
            f"SELECT user FROM {self._table} WHERE groop = :groop",
            {"groop": group},
        )
        return [row[0] for row in result.rows]

    def get_user(self, group: str, user: str) -> Optional[Credential]:
        """Look up the full record for (group, user)."""
        row = self._fetch_row(group, user)
        if row is None:
            return None
        return Credential(
            group=row[0],
            user=row[1],
            password_digest=row[2],
            fullname=row[3],
            email=row[4],
            question=row[5],
            answer=row[6],
            created=_to_epoch(row[7]),
            modified=_to_epoch(row[8]),
            composite_key=row[9],
        )

    def user_info(self, group: str, user: str) -> Optional[tuple]:
        """Record as a tuple in column order:

        (group, user, password, fullname, email, question, answer,
        created, modified, gukey)
        """
        record = self.get_user(group, user)
        return astuple(record) if record else None

    def user_info_dict(self, group: str, user: str) -> Optional[dict[str, Any]]:
        """Record as a dict keyed by column name (groop, user, password, ...)."""
        record = self.get_user(group, user)
        if record is None:
            return None
        return dict(zip(COLUMNS, asdict(record).values()))

    def get_user_fullname(self, group: str, user: str) -> Optional[str]:
        record = self.get_user(group, user)
        return record.fullname if record else None

    def get_user_email(self, group: str, user: str) -> Optional[str]:
        record = self.get_user(group, user)
        return record.email if record else None

    def get_user_question_answer(
        self, group: str, user: str
    ) -> Optional[tuple[Optional[str], Optional[str]]]:
        record = self.get_user(group, user)
        return (record.question, record.answer) if record else None

    def errstr(self) -> Optional[str]:
        """Last database error text, or None."""
        return self._conn.errstr

    def close(self) -> None:
        """Close the database connection."""
        if not self._conn.closed:
            self._conn.close()
            logger.info(f"CredentialStore closed: {self._config.database_name}")

    def __enter__(self) -> "CredentialStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
