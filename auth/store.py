"""
auth/store.py -- SQLAlchemy Core persistence layer for users and user metadata.

Pattern: Repository + Data Mapper (same as lms/store.py).
UserStore is the repository; _row_to_user is the mapper. Route, pipeline,
importer and sync code never touch SQL directly.

Two tables:
  users      -- one row per account. login and email are both UNIQUE; email
                is stored lowercased so equality lookups are case-insensitive.
  user_meta  -- per-user key/value rows. A key may have several rows
                (multi-valued keys such as the enrolled-course list).
                set_meta() replaces, add_meta() appends.

Atomicity:
  create_user() writes the user row and its initial metadata in one
  transaction, so a user created by inbound sync is never observable without
  its provenance marker. upgrade_legacy_password() writes the new hash and
  deletes the legacy marker in one transaction.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, importer/, lms/, or sync/.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("login", String(255), nullable=False, unique=True),
    Column("email", String(254), nullable=False, unique=True),
    Column("display_name", String(255), nullable=False, server_default=""),
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("roles", Text, nullable=False),  # JSON array, primary role first
    Column("hashed_password", Text),
    Column("created_at", String(32), nullable=False),
    Column("last_login", Text),  # ISO 8601 timestamp of last successful auth
)

_user_meta = Table(
    "user_meta",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("meta_key", String(255), nullable=False),
    Column("meta_value", Text),
    Index("ix_user_meta_user_key", "user_id", "meta_key"),
)


class UserCreationError(Exception):
    """Raised when a user cannot be created. str(exc) is the human-readable reason."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities and their metadata.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(login="amina", email="amina@example.com"), meta={"bsa_app_id": "42"})
        store.get_meta(uid, "bsa_app_id")   # "42"
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User, meta: dict[str, str] | None = None) -> int:
        """Insert a new user plus its initial metadata and return the new ID.

        Metadata values that are None or "" are not written. The user row and
        the metadata rows commit together or not at all.

        Raises UserCreationError for an empty login or email, a login or
        email that is already taken, any integrity failure on insert
        (e.g. a concurrent request creating the same account), or a value the
        database cannot store.
        """
        login = (user.login or "").strip()
        email = (user.email or "").strip().lower()
        if not login:
            raise UserCreationError("Cannot create a user with an empty login name.")
        if not email:
            raise UserCreationError("Cannot create a user with an empty email address.")
        if self.login_exists(login):
            raise UserCreationError("Sorry, that username already exists!")
        if self.get_by_email(email) is not None:
            raise UserCreationError("Sorry, that email address is already used!")

        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        login=login,
                        email=email,
                        display_name=user.display_name or login,
                        first_name=user.first_name or "",
                        last_name=user.last_name or "",
                        roles=json.dumps(user.roles or []),
                        hashed_password=user.hashed_password,
                        created_at=_now_iso(),
                    )
                )
                user_id = result.inserted_primary_key[0]
                rows = [
                    {"user_id": user_id, "meta_key": key, "meta_value": str(value)}
                    for key, value in (meta or {}).items()
                    if value is not None and value != ""
                ]
                if rows:
                    conn.execute(_user_meta.insert(), rows)
                conn.commit()
        except IntegrityError as exc:
            raise UserCreationError(f"Could not insert user into the database: {exc.orig}") from exc
        except (SQLAlchemyError, UnicodeError) as exc:
            raise UserCreationError(f"Could not store user: {exc}") from exc
        return user_id

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_login(self, login: str) -> User | None:
        """Look up a user by exact login (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.login == login)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        email = (email or "").strip().lower()
        if not email:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def resolve_login(self, login_or_email: str) -> User | None:
        """Resolve a login form value: exact login first, then email."""
        user = self.get_by_login(login_or_email)
        if user is None:
            user = self.get_by_email(login_or_email)
        return user

    def login_exists(self, login: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.login == login)).fetchone()
        return row is not None

    def upgrade_legacy_password(self, user_id: int, hashed_password: str, marker_key: str) -> bool:
        """Write the native hash and delete the legacy marker in one transaction.

        Returns False (and changes nothing) if the user does not exist.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password))
            if result.rowcount == 0:
                conn.rollback()
                return False
            conn.execute(
                _user_meta.delete().where((_user_meta.c.user_id == user_id) & (_user_meta.c.meta_key == marker_key))
            )
            conn.commit()
        return True

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_meta(self, user_id: int, key: str) -> str | None:
        """Return the first value stored under key, or None if there is none."""
        values = self.get_meta_values(user_id, key)
        return values[0] if values else None

    def get_meta_values(self, user_id: int, key: str) -> list[str]:
        """Return every value stored under key, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _user_meta.select()
                .where((_user_meta.c.user_id == user_id) & (_user_meta.c.meta_key == key))
                .order_by(_user_meta.c.id)
            ).fetchall()
        return [r.meta_value for r in rows]

    def has_meta(self, user_id: int, key: str) -> bool:
        """True if key holds a non-empty value."""
        return bool(self.get_meta(user_id, key))

    def set_meta(self, user_id: int, key: str, value) -> None:
        """Replace all values under key with a single value.

        Raises UserCreationError if the value cannot be stored; the previous
        values are kept in that case.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(_user_meta.delete().where((_user_meta.c.user_id == user_id) & (_user_meta.c.meta_key == key)))
                conn.execute(_user_meta.insert().values(user_id=user_id, meta_key=key, meta_value=str(value)))
                conn.commit()
        except (SQLAlchemyError, UnicodeError) as exc:
            raise UserCreationError(f"Could not store metadata {key!r}: {exc}") from exc

    def add_meta(self, user_id: int, key: str, value) -> None:
        """Append one more value under key (multi-valued keys)."""
        with self.engine.connect() as conn:
            conn.execute(_user_meta.insert().values(user_id=user_id, meta_key=key, meta_value=str(value)))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        login=row.login,
        email=row.email,
        display_name=row.display_name or "",
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        roles=json.loads(row.roles) if row.roles else [],
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        last_login=row.last_login or "",
    )
