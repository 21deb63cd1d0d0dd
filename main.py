#!/usr/bin/env python3
"""
Diagram Studio auth -- administrative commands.

Usage:
  python main.py migrate
  python main.py purge-sessions
  python main.py create-user alice --role member
  python main.py create-user admin --role admin --password-env ADMIN_PASSWORD

Environment variables:
  AUTH_DATABASE_URL   Session database (preferred).
  DATABASE_URL        Shared database, used when AUTH_DATABASE_URL is unset.
  DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME
                      migrate only: assembled into a postgresql URL when
                      neither URL above is set.
                      Defaults: diagram_studio / diagram_studio / localhost /
                      5434 / diagram_studio.

A .env file in the working directory is read once; variables already set in
the environment take precedence.

Every command exits 0 on success and 1 on any failure.
"""

import argparse
import getpass
import logging
import os
import sys
from typing import Optional

from auth.database import EngineProvider
from auth.errors import ConfigurationError, MigrationError, StoreFault
from auth.migrations import ensure_schema
from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES, hash_password, password_too_long
from auth.service import SessionService
from auth.store import SessionStore
from core.config import get_settings, resolve_migration_database_url

logger = logging.getLogger("diagram_studio.cli")

MIN_PASSWORD_LENGTH = 8


def cmd_migrate(args: argparse.Namespace) -> int:
    """Create or upgrade the auth schema. Safe to run on every deploy."""
    settings = get_settings()
    try:
        url = resolve_migration_database_url(settings)
    except ConfigurationError as e:
        print(f"  [!] {e}")
        return 1

    # Short-lived pool: closed as soon as the run finishes.
    provider = EngineProvider.from_settings(settings, url=url)
    print("Initializing database...\n")
    try:
        ensure_schema(provider.get_engine(), progress=print)
    except MigrationError as e:
        logger.error("Migration aborted at step '%s'", e.step)
        print(f"\n  [!] Database initialization failed: {e}")
        return 1
    finally:
        provider.dispose()
    print("\nDatabase initialization complete.")
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    """Delete expired session rows."""
    settings = get_settings()
    try:
        provider = EngineProvider.from_settings(settings)
    except ConfigurationError as e:
        print(f"  [!] {e}")
        return 1
    try:
        removed = SessionService.from_settings(SessionStore(provider), settings).purge_expired()
    except StoreFault as e:
        print(f"  [!] Could not purge sessions: {e}")
        return 1
    finally:
        provider.dispose()
    print(f"Removed {removed} expired session(s).")
    return 0


def _read_password(env_var: Optional[str]) -> Optional[str]:
    if env_var:
        return os.environ.get(env_var)
    first = getpass.getpass("Password: ")
    if first != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.")
        return None
    return first


def cmd_create_user(args: argparse.Namespace) -> int:
    """Insert a user with a bcrypt password hash."""
    password = _read_password(args.password_env)
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        return 1
    if password_too_long(password):
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
        return 1

    settings = get_settings()
    try:
        provider = EngineProvider.from_settings(settings)
    except ConfigurationError as e:
        print(f"  [!] {e}")
        return 1
    try:
        user_id = SessionStore(provider).create_user(
            User(username=args.username, role=args.role, password_hash=hash_password(password))
        )
    except StoreFault as e:
        print(f"  [!] Could not create user '{args.username}': {e}")
        return 1
    finally:
        provider.dispose()
    print(f"Created user '{args.username}' (id={user_id}, role={args.role}).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diagram-studio-auth",
        description="Administrative commands for the Diagram Studio session database.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py migrate
  AUTH_DATABASE_URL=postgresql://auth@db/auth python main.py purge-sessions
  ADMIN_PASSWORD=s3cret-pass python main.py create-user admin --role admin --password-env ADMIN_PASSWORD
        """,
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    migrate = sub.add_parser("migrate", help="Create or upgrade the auth schema (idempotent)")
    migrate.set_defaults(func=cmd_migrate)

    purge = sub.add_parser("purge-sessions", help="Delete expired sessions")
    purge.set_defaults(func=cmd_purge_sessions)

    create = sub.add_parser("create-user", help="Create a user with a password")
    create.add_argument("username")
    create.add_argument("--role", default="member", help="Role tag (default: member)")
    create.add_argument(
        "--password-env",
        metavar="VAR",
        help="Read the password from this environment variable instead of prompting",
    )
    create.set_defaults(func=cmd_create_user)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
