"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email carries a UNIQUE constraint. Registration checks for an existing
  email first, but two concurrent requests can both pass that check; the
  constraint makes the second insert raise IntegrityError instead of creating
  a duplicate account.

Roles live in their own table (one row per user/role pair) so a user can hold
any subset of the Role enum without a delimiter-encoded column.

Layer rule: no imports from api/ or moves/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Connection, Engine

from auth.models import Provider, Role, User
from core.config import get_settings

logger = logging.getLogger("movemaster.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL for OAuth-created users
    Column("provider", String(30), nullable=False, server_default="local"),
    Column("created_at", String(32), nullable=False),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("role", String(30), nullable=False),
    UniqueConstraint("user_id", "role", name="uq_user_role"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

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
    """Repository for User records.

    Usage:
        store = UserStore()
        store.create_user(User(email="a@x.com", hashed_password=hash_password("secret")))
        user = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().auth_db_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user with its roles and return the assigned ID.

        The user row and its role rows are committed together.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers must treat that as a duplicate-email conflict.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    hashed_password=user.hashed_password,
                    provider=user.provider.value,
                    created_at=_now_iso(),
                )
            )
            user_id = result.inserted_primary_key[0]
            if user.roles:
                conn.execute(
                    _user_roles.insert(),
                    [{"user_id": user_id, "role": role.value} for role in sorted(user.roles, key=lambda r: r.value)],
                )
            conn.commit()
        logger.info("Created user id=%d provider=%s", user_id, user.provider.value)
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found.

        Read-only: safe to call from registration and from every authentication
        attempt.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, _load_roles(conn, row.id))

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, _load_roles(conn, row.id))

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _load_roles(conn: Connection, user_id: int) -> frozenset[Role]:
    rows = conn.execute(_user_roles.select().where(_user_roles.c.user_id == user_id)).fetchall()
    roles: set[Role] = set()
    for r in rows:
        try:
            roles.add(Role(r.role))
        except ValueError:
            # Unknown role names grant nothing.
            logger.warning("Ignoring unknown role %r on user id=%d", r.role, user_id)
    return frozenset(roles)


def _row_to_user(row, roles: frozenset[Role]) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        provider=Provider(row.provider),
        roles=roles,
        created_at=row.created_at,
    )
