"""
api/main.py -- FastAPI application entry point for the Diagram Studio auth service.

Run with:      uvicorn asgi:app --reload
Migrate first: python main.py migrate

Middleware: CORSMiddleware for allowed browser origins, plus request logging.
Rate limits are per-route (@limiter.limit in api/routes/v1/auth.py); there
are no app-wide default limits, so SlowAPIMiddleware is not mounted.

Lifespan builds the shared resources exactly once at startup and releases
them at shutdown:
  settings -> EngineProvider -> SessionStore -> SessionService
The engine itself is still created lazily, on the first database call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.database import EngineProvider
from auth.service import SessionService
from auth.store import SessionStore
from core.config import get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("diagram_studio.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Construct the session stack once; dispose the pool on shutdown.

    EngineProvider.from_settings() raises ConfigurationError when neither
    AUTH_DATABASE_URL nor DATABASE_URL is set, which aborts startup.
    """
    settings = get_settings()
    provider = EngineProvider.from_settings(settings)
    store = SessionStore(provider)
    app.state.settings = settings
    app.state.session_store = store
    app.state.session_service = SessionService.from_settings(store, settings)
    logger.info("Auth service starting up (trusted_header_auth=%s)", settings.trusted_header_auth)

    yield

    provider.dispose()
    logger.info("Auth service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Diagram Studio Auth API",
    description="Session login, validation, and logout.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# The @limiter.limit decorator looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def access_log(request: Request, call_next):
    """One log line per request: method, path, status, latency. Never headers or bodies."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d in %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])

# ---------------------------------------------------------------------------
# Error envelope
#
# Every error leaves as {"error": {"code", "message", "detail"?}} so clients
# parse one shape regardless of status code.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def on_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    resp = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    resp.headers["Retry-After"] = "60"
    return resp


@app.exception_handler(RequestValidationError)
async def on_invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Field locations only: the rejected input may be a password.
    fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
    return _error(422, "validation_error", "Request validation failed.", ", ".join(fields))


@app.exception_handler(HTTPException)
async def on_http_error(request: Request, exc: HTTPException) -> JSONResponse:
    # Dependencies raise with a ready-made {"code", "message"} dict.
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a SELECT 1 against the session store. Not rate limited."""
    database = "ok" if request.app.state.session_store.ping() else "error"
    return HealthResponse(version=API_VERSION, components={"app": "ok", "database": database})
