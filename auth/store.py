"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_refresh_token are the
mappers. Service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Only token hashes reach the refresh_tokens table.

Optimistic concurrency:
  users.version is bumped by every save_refresh_tokens(). The UPDATE carries
  "WHERE version = :loaded_version", and the record rewrite happens in the
  same transaction. If another request saved first, the UPDATE matches no row
  and ConcurrentUpdateError is raised with nothing written. Callers reload and
  re-apply their change (see auth/service.py).

DB path: auth/homi_auth.db unless a db_url is given.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from auth.models import RefreshTokenRecord, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'homi_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),  # trimmed + lower-cased
    Column("password_hash", Text, nullable=False),
    Column("first_name", String(255)),
    Column("last_name", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("version", Integer, nullable=False, server_default="0"),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),  # preserves issuance order
    Column("user_id", String(36), nullable=False, index=True),
    Column("token_hash", String(128), nullable=False),  # SHA-512 hex
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("user_id", "token_hash", name="uq_refresh_tokens_user_hash"),
)


class ConcurrentUpdateError(Exception):
    """The user row changed between load and save; nothing was written."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a rotation write.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities and their refresh-token records.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(email="a@b.com", password_hash=hasher.hash("secret123")))
        user = store.get_by_id(user_id)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
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

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers should treat that as a concurrent registration of the same
        address that won the race.
        """
        user_id = user.id or str(uuid.uuid4())
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    password_hash=user.password_hash,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    created_at=now,
                    updated_at=now,
                    version=0,
                )
            )
            conn.commit()
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, self._load_refresh_tokens(conn, row.id))

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user (with refresh-token records) by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, self._load_refresh_tokens(conn, row.id))

    def delete_user(self, user_id: str) -> bool:
        """Delete a user and all of its refresh-token records. Returns True if a user was deleted."""
        with self.engine.connect() as conn:
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh-token records
    # ------------------------------------------------------------------

    def save_refresh_tokens(self, user: User) -> None:
        """Persist user.refresh_tokens if the row is still at user.version.

        The version bump and the record rewrite commit together. On success
        user.version and user.updated_at are advanced in place so the same
        object can be saved again. Raises ConcurrentUpdateError on a stale
        version, leaving the database untouched.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user.id) & (_users.c.version == user.version))
                .values(version=user.version + 1, updated_at=now)
            )
            if result.rowcount == 0:
                conn.rollback()
                raise ConcurrentUpdateError(f"user {user.id} changed since version {user.version}")
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user.id))
            if user.refresh_tokens:
                conn.execute(
                    _refresh_tokens.insert(),
                    [
                        {
                            "user_id": user.id,
                            "token_hash": r.token_hash,
                            "expires_at": r.expires_at.isoformat(),
                            "created_at": r.created_at.isoformat(),
                        }
                        for r in user.refresh_tokens
                    ],
                )
            conn.commit()
        user.version += 1
        user.updated_at = now

    def _load_refresh_tokens(self, conn, user_id: str) -> list[RefreshTokenRecord]:
        rows = conn.execute(
            _refresh_tokens.select().where(_refresh_tokens.c.user_id == user_id).order_by(_refresh_tokens.c.id)
        ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, refresh_tokens: list[RefreshTokenRecord]) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
        refresh_tokens=refresh_tokens,
    )


def _row_to_refresh_token(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        token_hash=row.token_hash,
        expires_at=_parse_iso(row.expires_at),
        created_at=_parse_iso(row.created_at),
    )
