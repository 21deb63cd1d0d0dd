"""
API request and response models for the auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.passwords import MAX_PASSWORD_BYTES, password_too_long

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    The password is capped at 72 UTF-8 bytes, the most bcrypt reads; the
    character limit rejects oversized bodies before encoding them.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if password_too_long(v):
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserViewResponse(BaseModel):
    username: str
    role: str


class LoginResponse(BaseModel):
    """Response for a successful login. Never carries the user id or hash."""

    success: bool = True
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserViewResponse


class LogoutResponse(BaseModel):
    success: bool


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me.

    user_id is None for identities supplied by trusted headers.
    """

    user: str
    role: str
    user_id: Optional[int] = None


class ErrorDetail(BaseModel):
    """Structured error body shared by every error response."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope for error responses: {"error": {...}}."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
