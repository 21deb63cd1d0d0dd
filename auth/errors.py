"""
auth/errors.py -- Exception taxonomy for the session core.

Only the Schema Migrator and the CLI let these end the process. Everything
that handles a request (auth/service.py and above) catches them and degrades
to a negative result.

Layer rule: stdlib only. core/config.py imports ConfigurationError from here.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by the auth package."""


class ConfigurationError(AuthError):
    """No usable connection string (or another required setting) is configured."""


class CredentialError(AuthError):
    """Unknown username or wrong secret.

    The message is always the generic one so it can never leak which factor
    was wrong, even if it ends up in a response body by mistake.
    """

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class StoreFault(AuthError):
    """A connection or query failure in the session store."""

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}" if message else f"{operation} failed")


class MigrationError(AuthError):
    """A schema migration step failed. The run is aborted, not retried."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(f"{step}: {message}")
