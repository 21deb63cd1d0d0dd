"""
auth/database.py -- Shared, lazily-built SQLAlchemy engine for the auth store.

Pattern: initialize-once resource. EngineProvider is constructed exactly once
(API lifespan or CLI entry point) and passed by reference to every component
that needs the database. The engine itself is built on the first
get_engine() call and reused for the lifetime of the provider.

Pool policy:
  QueuePool with pool_size=5 and max_overflow=0 -- a hard cap of 5 concurrent
  connections. pool_timeout and the driver's connect timeout both use the
  configured connect timeout (2s) so a dead database fails fast.

  SQLAlchemy's pool has no idle reaper; pool_recycle=30 retires connections
  older than the idle timeout at checkout, and pool_pre_ping discards
  connections the server has already closed.

Errors:
  A handle_error listener logs every DBAPI error raised on the engine. The
  listener only observes -- the exception still propagates to the caller,
  which is auth/store.py, where it becomes a StoreFault.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import QueuePool

from core.config import Settings, resolve_auth_database_url

logger = logging.getLogger("diagram_studio.db")


def _log_db_error(context) -> None:
    logger.error(
        "Auth database error (%s): %s",
        type(context.original_exception).__name__,
        context.original_exception,
    )


def _connect_args(url: str, connect_timeout: int) -> dict:
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        # TestClient and uvicorn workers run handlers in a thread pool.
        return {"check_same_thread": False, "timeout": connect_timeout}
    if backend == "postgresql":
        return {"connect_timeout": connect_timeout}
    return {}


class EngineProvider:
    """Owns the single pooled engine for one database URL.

    Usage:
        provider = EngineProvider.from_settings(get_settings())
        with provider.get_engine().begin() as conn:
            ...
        provider.dispose()
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 5,
        idle_timeout: int = 30,
        connect_timeout: int = 2,
    ) -> None:
        self.url = url
        self.pool_size = pool_size
        self.idle_timeout = idle_timeout
        self.connect_timeout = connect_timeout
        self._engine: Engine | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, url: str | None = None) -> EngineProvider:
        """Build a provider from Settings. Raises ConfigurationError if no URL resolves."""
        return cls(
            url or resolve_auth_database_url(settings),
            pool_size=settings.pool_size,
            idle_timeout=settings.pool_idle_timeout,
            connect_timeout=settings.pool_connect_timeout,
        )

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    def get_engine(self) -> Engine:
        """Return the shared engine, creating it on first call.

        Double-checked locking: the fast path reads the attribute without the
        lock; only the first concurrent callers contend for it.
        """
        engine = self._engine
        if engine is None:
            with self._lock:
                if self._engine is None:
                    self._engine = self._build_engine()
                engine = self._engine
        return engine

    def _build_engine(self) -> Engine:
        engine = create_engine(
            self.url,
            poolclass=QueuePool,
            pool_size=self.pool_size,
            max_overflow=0,
            pool_timeout=self.connect_timeout,
            pool_recycle=self.idle_timeout,
            pool_pre_ping=True,
            connect_args=_connect_args(self.url, self.connect_timeout),
        )
        event.listen(engine, "handle_error", _log_db_error)
        logger.info(
            "Auth database pool created (backend=%s, size=%d)",
            engine.url.get_backend_name(),
            self.pool_size,
        )
        return engine

    def dispose(self) -> None:
        """Close all pooled connections. A later get_engine() builds a fresh engine."""
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
