"""
auth/service.py -- Session lifecycle: login, validate, logout.

State of a session over its lifetime:

    absent --login--> active --time--> expired
                        |                 |
                        +-----logout------+--> absent (revoked)

Expired rows stay in the table until logout or purge_expired() removes them;
validation treats them as absent.

Error boundary:
  This is the outermost layer that sees StoreFault and CredentialError. None
  of login(), validate_session(), logout() raise for either -- they degrade to
  a negative result so the request layer stays fail-closed without crashing.
  check_session() keeps the reason (not found vs store unavailable) for logs
  and callers that care; validate_session() collapses it to None.

Security:
  Unknown username and wrong password produce the same LoginResult and run
  the same bcrypt work (see auth/passwords.py). Passwords and tokens are
  never logged.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import CredentialError, StoreFault
from auth.models import (
    LoginResult,
    LogoutResult,
    SessionCheck,
    SessionStatus,
    SessionUser,
    User,
    UserView,
)
from auth.passwords import BcryptVerifier, CredentialVerifier
from auth.store import SessionStore
from core.config import Settings

logger = logging.getLogger("diagram_studio.auth")

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 64
SESSION_TTL = timedelta(days=7)

INVALID_CREDENTIALS = "Invalid credentials"
LOGIN_FAILED = "Login failed"


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Return a random token drawn uniformly from [A-Za-z0-9].

    64 symbols from a 62-symbol alphabet is ~381 bits of entropy, so
    collisions are not a practical concern. secrets.choice uses the OS CSPRNG.
    """
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionService:
    """Orchestrates credential checks and session rows.

    Usage:
        service = SessionService(SessionStore(provider))
        result = service.login("alice", "wonderland")
        service.validate_session(result.token)   # SessionUser(user="alice", ...)
        service.logout(result.token)
    """

    def __init__(
        self,
        store: SessionStore,
        verifier: CredentialVerifier | None = None,
        *,
        ttl: timedelta = SESSION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.verifier = verifier or BcryptVerifier()
        self.ttl = ttl
        self.clock = clock

    @classmethod
    def from_settings(cls, store: SessionStore, settings: Settings) -> SessionService:
        """Build a service whose sessions live for SESSION_TTL_DAYS."""
        return cls(store, ttl=timedelta(days=settings.session_ttl_days))

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def _authenticate(self, username: str, password: str) -> User:
        """Return the user if the password verifies. Raises CredentialError otherwise.

        verify() is called even when the user does not exist so both failure
        paths cost one bcrypt comparison.
        """
        user = self.store.find_user_by_username(username)
        stored = user.password_hash if user is not None else None
        if not self.verifier.verify(stored, password) or user is None:
            raise CredentialError()
        return user

    def login(self, username: str, password: str) -> LoginResult:
        try:
            user = self._authenticate(username, password)
            token = generate_token()
            expires_at = self.clock() + self.ttl
            self.store.create_session(user.id, token, expires_at)
        except CredentialError:
            logger.info("Login rejected: invalid credentials")
            return LoginResult(success=False, error=INVALID_CREDENTIALS)
        except StoreFault as exc:
            logger.error("Login failed: %s", exc)
            return LoginResult(success=False, error=LOGIN_FAILED)

        logger.info("Login succeeded for username=%r (session expires %s)", user.username, expires_at.isoformat())
        return LoginResult(
            success=True,
            token=token,
            user=UserView(username=user.username, role=user.role),
            expires_at=expires_at,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_session(self, token: str | None) -> SessionCheck:
        """Validate a token and report why it failed, if it did."""
        if not token:
            return SessionCheck(SessionStatus.MISSING_TOKEN)
        try:
            session = self.store.find_active_session_with_user(token, self.clock())
        except StoreFault as exc:
            logger.error("Session validation error: %s", exc)
            return SessionCheck(SessionStatus.STORE_UNAVAILABLE)
        if session is None:
            return SessionCheck(SessionStatus.NOT_FOUND)
        return SessionCheck(
            SessionStatus.VALID,
            SessionUser(user=session.username, role=session.role, user_id=session.user_id),
        )

    def validate_session(self, token: str | None) -> SessionUser | None:
        """Return the identity behind `token`, or None if it is not a live session."""
        return self.check_session(token).user

    # ------------------------------------------------------------------
    # Logout / cleanup
    # ------------------------------------------------------------------

    def logout(self, token: str | None) -> LogoutResult:
        """Revoke the session. An unknown or empty token is still a successful logout."""
        if not token:
            return LogoutResult(success=True)
        try:
            self.store.delete_session(token)
        except StoreFault as exc:
            logger.error("Logout error: %s", exc)
            return LogoutResult(success=False)
        return LogoutResult(success=True)

    def purge_expired(self) -> int:
        """Delete every session that has expired. Raises StoreFault.

        Not called on any request path; run from `python main.py purge-sessions`.
        """
        removed = self.store.delete_expired_sessions(self.clock())
        logger.info("Purged %d expired sessions", removed)
        return removed
