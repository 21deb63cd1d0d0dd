"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Identity sources are checked in priority order:
  1. x-user / x-role headers -- internal service-to-service calls. Only when
     TRUSTED_HEADER_AUTH=true; there is no signature on these headers, so the
     deployment must strip them at its network edge.
  2. Session cookie ("diagram-studio-session") -- set by the web login flow.
  3. Authorization: Bearer <token> header -- API clients.

Cookie and Bearer tokens are the same opaque session token and both resolve
through SessionService.validate_session().

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: may import from fastapi (for Request/HTTPException) because this
module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import SessionUser


def get_request_token(request: Request) -> str | None:
    """Return the session token from the cookie, else from a Bearer header."""
    settings = request.app.state.settings
    token: str | None = request.cookies.get(settings.session_cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_user(request: Request) -> SessionUser | None:
    """Attempt to authenticate the request. Never raises.

    Returns the SessionUser on success, None on any failure -- including a
    store outage, which the service has already logged.
    """
    settings = request.app.state.settings

    if settings.trusted_header_auth:
        header_user = request.headers.get("x-user")
        header_role = request.headers.get("x-role")
        if header_user and header_role:
            return SessionUser(user=header_user, role=header_role)

    token = get_request_token(request)
    if not token:
        return None
    return request.app.state.session_service.validate_session(token)


def get_current_user(request: Request) -> SessionUser:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: SessionUser = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user

