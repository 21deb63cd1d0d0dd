"""
auth/passwords.py -- Credential verification.

Callers depend on the CredentialVerifier protocol only, so the hashing scheme
can change without touching the service.

BcryptVerifier uses bcrypt directly (no passlib wrapper). A stored value that
is not a bcrypt hash -- including legacy plaintext rows -- never verifies.

Timing equalization:
  verify() always runs one bcrypt comparison. When there is no usable stored
  hash (unknown user, NULL password_hash, malformed value) it compares against
  _DUMMY_HASH instead, so response time does not reveal which factor failed.
"""

from __future__ import annotations

from typing import Protocol

import bcrypt

# bcrypt only reads the first 72 bytes; bcrypt >= 5 raises ValueError beyond that.
MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


class CredentialVerifier(Protocol):
    def verify(self, stored: str | None, submitted: str) -> bool: ...


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValueError for passwords over MAX_PASSWORD_BYTES; callers check
    password_too_long() first.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _checkpw(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Invalid salt, or a submitted password over MAX_PASSWORD_BYTES.
        return False


# Computed once at module load so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("diagram-studio-timing-dummy")


class BcryptVerifier:
    """CredentialVerifier backed by salted bcrypt hashes."""

    def verify(self, stored: str | None, submitted: str) -> bool:
        if not stored or not stored.startswith("$2"):
            _checkpw(submitted, _DUMMY_HASH)
            return False
        return _checkpw(submitted, stored)
