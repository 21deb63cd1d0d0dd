"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; these own the shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass
class User:
    """An identity record as the session core sees it.

    The users table carries more columns (email_verified, reset and consent
    fields) which belong to the registration flow; only these four are read.
    password_hash is None for accounts that have not been given a password.
    """

    username: str
    role: str = "member"
    id: int | None = None
    password_hash: str | None = None


@dataclass
class ActiveSession:
    """Row of the sessions JOIN users lookup for a token that has not expired."""

    id: int
    token: str
    user_id: int
    expires_at: datetime
    username: str
    role: str


@dataclass(frozen=True)
class UserView:
    """Minimal user projection returned from login. Never the id or the hash."""

    username: str
    role: str


@dataclass(frozen=True)
class SessionUser:
    """Identity attached to a request after validation.

    user_id is None for identities taken from trusted headers, which bypass
    the store.
    """

    user: str
    role: str
    user_id: int | None = None


@dataclass(frozen=True)
class LoginResult:
    success: bool
    token: str | None = None
    user: UserView | None = None
    expires_at: datetime | None = None
    error: str | None = None


@dataclass(frozen=True)
class LogoutResult:
    success: bool


class SessionStatus(str, Enum):
    VALID = "valid"
    MISSING_TOKEN = "missing_token"
    NOT_FOUND = "not_found"  # never issued, revoked, or expired
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class SessionCheck:
    """Outcome of a validation with the reason kept for logs and health checks.

    Request handling collapses every non-VALID status to "unauthenticated".
    """

    status: SessionStatus
    user: SessionUser | None = None
