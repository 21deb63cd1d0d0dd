"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper.
SessionStore is the repository; _row_to_user / _row_to_active_session are the
mappers. The service and request layers never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Connections:
  Every method is a single statement inside `with engine.begin() as conn`, so
  the connection goes back to the pool on both the success and the failure
  path and each mutation commits atomically on its own. No method relies on a
  multi-statement transaction.

Errors:
  SQLAlchemyError is logged with the operation name and re-raised as
  StoreFault. Nothing here decides whether a fault is fatal -- that is the
  service's job.

Timestamps:
  "now" is always passed in from the caller and compared in SQL as a bound
  parameter, never with the database's NOW(). All datetimes are UTC. SQLite
  hands them back naive, so the mappers re-attach UTC.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    select,
    text,
)
from sqlalchemy.exc import SQLAlchemyError

from auth.database import EngineProvider
from auth.errors import StoreFault
from auth.models import ActiveSession, User

logger = logging.getLogger("diagram_studio.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL until a password is set
    Column("role", String(30), nullable=False, server_default="member"),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

Index("idx_sessions_expires_at", sessions.c.expires_at)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for User lookups and Session rows.

    Usage:
        store = SessionStore(EngineProvider(url))
        user = store.find_user_by_username("alice")
        store.create_session(user.id, token, expires_at)
        store.find_active_session_with_user(token, now)
        store.delete_session(token)
    """

    def __init__(self, provider: EngineProvider) -> None:
        self.provider = provider

    def _fault(self, operation: str, exc: SQLAlchemyError) -> StoreFault:
        logger.error("Session store %s failed: %s", operation, exc)
        return StoreFault(operation, type(exc).__name__)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def find_user_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        query = select(users.c.id, users.c.username, users.c.password_hash, users.c.role).where(
            users.c.username == username
        )
        try:
            with self.provider.get_engine().begin() as conn:
                row = conn.execute(query).fetchone()
        except SQLAlchemyError as exc:
            raise self._fault("find_user_by_username", exc) from exc
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User) -> int:
        """Insert a user and return its assigned ID.

        Registration lives outside this package; this exists for seeding
        (main.py create-user) and tests. Raises StoreFault if the username
        is already taken.
        """
        try:
            with self.provider.get_engine().begin() as conn:
                result = conn.execute(
                    users.insert().values(
                        username=user.username,
                        password_hash=user.password_hash,
                        role=user.role,
                    )
                )
        except SQLAlchemyError as exc:
            raise self._fault("create_user", exc) from exc
        return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: int, token: str, expires_at: datetime) -> None:
        try:
            with self.provider.get_engine().begin() as conn:
                conn.execute(sessions.insert().values(user_id=user_id, token=token, expires_at=_as_utc(expires_at)))
        except SQLAlchemyError as exc:
            raise self._fault("create_session", exc) from exc

    def find_active_session_with_user(self, token: str, now: datetime) -> ActiveSession | None:
        """Return the session and its owner if the token exists and expires after `now`.

        One query: sessions JOIN users, filtered on token and expires_at > now.
        An expired row and a missing row are indistinguishable here.
        """
        query = (
            select(
                sessions.c.id,
                sessions.c.token,
                sessions.c.user_id,
                sessions.c.expires_at,
                users.c.username,
                users.c.role,
            )
            .select_from(sessions.join(users, sessions.c.user_id == users.c.id))
            .where(sessions.c.token == token, sessions.c.expires_at > _as_utc(now))
        )
        try:
            with self.provider.get_engine().begin() as conn:
                row = conn.execute(query).fetchone()
        except SQLAlchemyError as exc:
            raise self._fault("find_active_session_with_user", exc) from exc
        return _row_to_active_session(row) if row is not None else None

    def delete_session(self, token: str) -> bool:
        """Delete the session for `token`. Returns True if a row was removed.

        Deleting a token that does not exist is not an error.
        """
        try:
            with self.provider.get_engine().begin() as conn:
                result = conn.execute(sessions.delete().where(sessions.c.token == token))
        except SQLAlchemyError as exc:
            raise self._fault("delete_session", exc) from exc
        return result.rowcount > 0

    def delete_expired_sessions(self, now: datetime, batch_size: int = 500) -> int:
        """Delete sessions with expires_at <= now in batches. Returns the number removed.

        Each batch is its own statement so a large backlog never holds one
        long-running lock on the table.
        """
        cutoff = _as_utc(now)
        removed = 0
        while True:
            batch = select(sessions.c.id).where(sessions.c.expires_at <= cutoff).limit(batch_size)
            try:
                with self.provider.get_engine().begin() as conn:
                    result = conn.execute(sessions.delete().where(sessions.c.id.in_(batch)))
            except SQLAlchemyError as exc:
                raise self._fault("delete_expired_sessions", exc) from exc
            removed += result.rowcount
            if result.rowcount < batch_size:
                return removed

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Used by GET /api/v1/health."""
        try:
            with self.provider.get_engine().connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Session store ping failed: %s", exc)
            return False
        return True


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=row.role,
    )


def _row_to_active_session(row) -> ActiveSession:
    return ActiveSession(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=_as_utc(row.expires_at),
        username=row.username,
        role=row.role,
    )
