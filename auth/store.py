"""
auth/store.py -- Persistence for UserRecord.

Pattern: Repository + Data Mapper. UserStore is the protocol the core depends
on; SqlUserStore (SQLAlchemy Core) and InMemoryUserStore are the two
implementations. _row_to_user is the mapper. Service code never touches SQL.

Uniqueness:
  The store is the authoritative guard for username and email uniqueness.
  The service checks before inserting, but two concurrent registrations can
  both pass that check -- insert() must then fail with DuplicateKeyError
  naming the colliding field, never with a generic error.

  SQL: UNIQUE(username) and UNIQUE(email). NULL emails are distinct under a
  UNIQUE constraint in SQLite and PostgreSQL, so any number of users may
  register without an email.

  In-memory: a lock around check-and-insert.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps are stored as ISO 8601 UTC strings and parsed back to aware
datetimes by the mapper.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import dataclasses
import threading
from datetime import datetime
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import UserRecord


class DuplicateKeyError(Exception):
    """Raised by UserStore.insert() when a uniqueness constraint rejects the row.

    field is "username" or "email".
    """

    def __init__(self, field: str) -> None:
        super().__init__(f"duplicate {field}")
        self.field = field


class UserStore(Protocol):
    """What the credential service needs from storage."""

    def find_by_username(self, username: str) -> UserRecord | None: ...

    def find_by_email(self, email: str) -> UserRecord | None: ...

    def insert(self, user: UserRecord) -> UserRecord: ...

    def touch_updated_at(self, user_id: int, when: datetime) -> bool: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("email", String(100), unique=True),  # NULL allowed, unique when present
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# SQL repository
# ---------------------------------------------------------------------------


class SqlUserStore:
    """SQLAlchemy Core implementation of UserStore.

    Usage:
        store = SqlUserStore("sqlite:///users.db")
        store.insert(UserRecord(username="alice", password_hash=h, created_at=utc_now()))
        user = store.find_by_username("alice")
        store.close()

    timeout_seconds is the deadline for acquiring a connection: the busy
    timeout on SQLite, the pool checkout timeout elsewhere.
    """

    def __init__(self, db_url: str, timeout_seconds: float = 5.0) -> None:
        engine_kwargs: dict = {}
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout_seconds
        else:
            engine_kwargs["pool_timeout"] = timeout_seconds
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def find_by_username(self, username: str) -> UserRecord | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> UserRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def insert(self, user: UserRecord) -> UserRecord:
        """Insert a new user and return it with its assigned id.

        Raises DuplicateKeyError if the username or email constraint fires.
        IntegrityError does not portably say which constraint failed, so we
        look the keys up again after the rollback.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        password_hash=user.password_hash,
                        email=user.email,
                        created_at=user.created_at.isoformat(),
                        updated_at=user.updated_at.isoformat() if user.updated_at else None,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            if self.find_by_username(user.username) is not None:
                raise DuplicateKeyError("username") from exc
            if user.email is not None and self.find_by_email(user.email) is not None:
                raise DuplicateKeyError("email") from exc
            raise
        return dataclasses.replace(user, id=result.inserted_primary_key[0])

    def touch_updated_at(self, user_id: int, when: datetime) -> bool:
        """Stamp updated_at on a successful login. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(updated_at=when.isoformat()))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# In-memory repository
# ---------------------------------------------------------------------------


class InMemoryUserStore:
    """Dictionary-backed UserStore for tests and single-process demos.

    Records are copied on the way in and out so callers cannot mutate stored
    state behind the store's back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[int, UserRecord] = {}
        self._id_by_username: dict[str, int] = {}
        self._id_by_email: dict[str, int] = {}
        self._next_id = 1

    def find_by_username(self, username: str) -> UserRecord | None:
        with self._lock:
            user_id = self._id_by_username.get(username)
            return dataclasses.replace(self._by_id[user_id]) if user_id is not None else None

    def find_by_email(self, email: str) -> UserRecord | None:
        with self._lock:
            user_id = self._id_by_email.get(email)
            return dataclasses.replace(self._by_id[user_id]) if user_id is not None else None

    def insert(self, user: UserRecord) -> UserRecord:
        with self._lock:
            if user.username in self._id_by_username:
                raise DuplicateKeyError("username")
            if user.email is not None and user.email in self._id_by_email:
                raise DuplicateKeyError("email")
            stored = dataclasses.replace(user, id=self._next_id)
            self._next_id += 1
            self._by_id[stored.id] = stored
            self._id_by_username[stored.username] = stored.id
            if stored.email is not None:
                self._id_by_email[stored.email] = stored.id
            return dataclasses.replace(stored)

    def touch_updated_at(self, user_id: int, when: datetime) -> bool:
        with self._lock:
            if user_id not in self._by_id:
                return False
            self._by_id[user_id] = dataclasses.replace(self._by_id[user_id], updated_at=when)
            return True


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> UserRecord:
    return UserRecord(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        email=row.email,
        created_at=datetime.fromisoformat(row.created_at),
        updated_at=datetime.fromisoformat(row.updated_at) if row.updated_at else None,
    )
