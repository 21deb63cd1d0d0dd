"""
auth/migrations.py -- Idempotent schema migration for the auth database.

Run out-of-band (python main.py migrate) before the API starts. Never called
per request.

Idempotence:
  Tables and indexes are created with checkfirst=True. Column additions look
  the column up with the SQLAlchemy inspector first and skip it if present.
  This gives ADD COLUMN IF NOT EXISTS semantics on PostgreSQL and on SQLite,
  which has no IF NOT EXISTS form for ALTER TABLE. Running ensure_schema()
  any number of times leaves the same end state.

Steps run in order, each in its own transaction. Column additions do not
depend on each other; they only need the users table from the first step.
The first failure aborts the run with MigrationError -- no retries, no
partial-success reporting beyond the progress lines already emitted.

DDL column types are compiled against the engine's dialect, e.g.
DateTime(timezone=True) becomes TIMESTAMP WITH TIME ZONE on PostgreSQL and
DATETIME on SQLite. Column names and types come from the constant tables
below, never from input.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
    inspect,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.types import TypeEngine

from auth.errors import MigrationError
from auth.store import metadata as session_metadata
from auth.store import sessions, users

logger = logging.getLogger("diagram_studio.migrations")

# ---------------------------------------------------------------------------
# user_settings -- provisioned here, used by the settings feature, not by the
# session core.
# ---------------------------------------------------------------------------

_settings_metadata = MetaData()

user_settings = Table(
    "user_settings",
    _settings_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_email", Text, nullable=False, unique=True),
    Column("settings", JSON().with_variant(JSONB(), "postgresql"), nullable=False, server_default=text("'{}'")),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
)

user_settings_email_index = Index("idx_user_settings_email", user_settings.c.user_email)


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    type_: TypeEngine
    default: str | None = None  # SQL literal


_USER_COLUMN_STEPS: list[tuple[str, list[ColumnSpec]]] = [
    ("users.password_hash", [ColumnSpec("password_hash", Text())]),
    ("users.email_verified", [ColumnSpec("email_verified", Boolean(), "FALSE")]),
    (
        "users password reset columns",
        [
            ColumnSpec("reset_token", Text()),
            ColumnSpec("reset_token_expires", DateTime(timezone=True)),
        ],
    ),
    (
        "users terms acceptance columns",
        [
            ColumnSpec("accepted_terms", Boolean(), "FALSE"),
            ColumnSpec("accepted_terms_at", DateTime(timezone=True)),
            ColumnSpec("accepted_privacy", Boolean(), "FALSE"),
            ColumnSpec("accepted_privacy_at", DateTime(timezone=True)),
        ],
    ),
]


# ---------------------------------------------------------------------------
# Step implementations
# ---------------------------------------------------------------------------


def _create_auth_tables(conn: Connection) -> None:
    session_metadata.create_all(conn, tables=[users, sessions], checkfirst=True)


def _create_user_settings(conn: Connection) -> None:
    user_settings.create(conn, checkfirst=True)


def _create_user_settings_index(conn: Connection) -> None:
    # A no-op right after _create_user_settings on a fresh database; repairs
    # databases where the table exists without the index.
    user_settings_email_index.create(conn, checkfirst=True)


def add_missing_columns(conn: Connection, table: str, columns: list[ColumnSpec]) -> list[str]:
    """ALTER TABLE ... ADD COLUMN for each column not already on `table`.

    Returns the names of the columns actually added.
    """
    existing = {col["name"] for col in inspect(conn).get_columns(table)}
    added = []
    for column in columns:
        if column.name in existing:
            continue
        ddl = f"ALTER TABLE {table} ADD COLUMN {column.name} {column.type_.compile(dialect=conn.dialect)}"
        if column.default is not None:
            ddl += f" DEFAULT {column.default}"
        conn.execute(text(ddl))
        added.append(column.name)
    return added


def _column_step(columns: list[ColumnSpec]) -> Callable[[Connection], None]:
    def step(conn: Connection) -> None:
        added = add_missing_columns(conn, "users", columns)
        if added:
            logger.info("Added users columns: %s", ", ".join(added))

    return step


MIGRATION_STEPS: list[tuple[str, Callable[[Connection], None]]] = [
    ("users and sessions tables", _create_auth_tables),
    ("user_settings table", _create_user_settings),
    ("user_settings indexes", _create_user_settings_index),
    *[(name, _column_step(columns)) for name, columns in _USER_COLUMN_STEPS],
]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def ensure_schema(engine: Engine, progress: Callable[[str], None] | None = None) -> list[str]:
    """Run every migration step in order. Returns the names of the steps run.

    progress, if given, is called with a one-line message before and after
    each step (the CLI passes print).

    Raises MigrationError on the first failing step.
    """
    completed = []
    for name, step in MIGRATION_STEPS:
        if progress:
            progress(f"Ensuring {name}...")
        try:
            with engine.begin() as conn:
                step(conn)
        except SQLAlchemyError as exc:
            logger.error("Migration step '%s' failed: %s", name, exc)
            raise MigrationError(name, str(exc)) from exc
        completed.append(name)
        if progress:
            progress(f"  {name} ready")
    logger.info("Schema migration complete (%d steps)", len(completed))
    return completed
