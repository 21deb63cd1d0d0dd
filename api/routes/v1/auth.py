"""
api/routes/v1/auth.py -- Session authentication REST endpoints.

Routes:
  POST /api/v1/auth/login   -- password login; sets the session cookie
  POST /api/v1/auth/logout  -- deletes the session row and clears the cookie
  GET  /api/v1/auth/me      -- current identity (requires auth)

Security:
  POST /login is rate-limited to 10 requests/minute per IP.
  Unknown username and wrong password return the identical 401 body.
  Cache-Control: no-store on login responses.

Handlers are plain `def` so FastAPI runs them in its thread pool; every
service call does blocking database I/O.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, LoginRequest, LoginResponse, LogoutResponse, MeResponse
from auth.dependencies import get_current_user, get_request_token
from auth.models import SessionUser
from auth.service import INVALID_CREDENTIALS, SessionService

# Auth policy:
# - POST /api/v1/auth/login:  public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout: public -- revoking an unknown token is still a success
# - GET  /api/v1/auth/me:     requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit("10/minute")  # must be BELOW @router so the registered endpoint is the limited one
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    401 for bad credentials, 503 when the store is unavailable. Neither
    response says which factor was wrong.
    """
    service: SessionService = request.app.state.session_service
    settings = request.app.state.settings

    result = service.login(body.username, body.password)
    if not result.success:
        bad_credentials = result.error == INVALID_CREDENTIALS
        resp = JSONResponse(
            status_code=401 if bad_credentials else 503,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="bad_credentials" if bad_credentials else "login_failed",
                    message=result.error or "Login failed",
                )
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=result.token,
            expires_at=result.expires_at,
            user={"username": result.user.username, "role": result.user.role},
        ).model_dump(mode="json"),
    )
    resp.set_cookie(
        settings.session_cookie_name,
        value=result.token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=int(service.ttl.total_seconds()),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request) -> JSONResponse:
    """Delete the caller's session and clear the cookie.

    The cookie is cleared even when the store call fails so the browser does
    not keep presenting a token the user asked to drop.
    """
    service: SessionService = request.app.state.session_service
    settings = request.app.state.settings

    result = service.logout(get_request_token(request))
    resp = JSONResponse(
        status_code=200 if result.success else 503,
        content=LogoutResponse(success=result.success).model_dump(),
    )
    resp.delete_cookie(settings.session_cookie_name)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: SessionUser = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user=current_user.user, role=current_user.role, user_id=current_user.user_id)
