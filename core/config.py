"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The .env
      file is therefore read exactly once per process.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Real environment variables always win over
      .env entries, so a deployment can override a checked-in .env.

  Resolution functions: the connection-string fallback chains are plain
      functions over a Settings instance, so they can be tested by building
      Settings(...) directly without touching os.environ.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/
(except the exception taxonomy, which has no dependencies of its own).
"""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from auth.errors import ConfigurationError

logger = logging.getLogger("diagram_studio.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `auth_database_url` reads from AUTH_DATABASE_URL.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    auth_database_url: str = ""
    database_url: str = ""

    # Used only by the migration tool when neither URL above is set.
    db_user: str = "diagram_studio"
    db_password: str = "diagram_studio"
    db_host: str = "localhost"
    db_port: int = 5434
    db_name: str = "diagram_studio"

    # ------------------------------------------------------------------
    # Connection pool
    # ------------------------------------------------------------------

    pool_size: int = 5
    pool_idle_timeout: int = 30  # seconds
    pool_connect_timeout: int = 2  # seconds

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_ttl_days: int = 7
    session_cookie_name: str = "diagram-studio-session"
    secure_cookies: bool = False

    # x-user / x-role identity headers. Only enable behind an internal network
    # boundary that strips these headers from external traffic.
    trusted_header_auth: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]


def resolve_auth_database_url(settings: Settings) -> str:
    """Return the connection string for the session store.

    Precedence:
      1. AUTH_DATABASE_URL -- dedicated auth database
      2. DATABASE_URL      -- shared application database

    Raises ConfigurationError when neither is set.
    """
    for name in ("auth_database_url", "database_url"):
        value = getattr(settings, name).strip()
        if value:
            return value
    raise ConfigurationError(
        "No database configured for sessions. Set AUTH_DATABASE_URL or DATABASE_URL."
    )


def resolve_migration_database_url(settings: Settings) -> str:
    """Return the connection string for the schema migration tool.

    Precedence:
      1. AUTH_DATABASE_URL
      2. DATABASE_URL
      3. postgresql URL assembled from DB_USER, DB_PASSWORD, DB_HOST, DB_PORT,
         DB_NAME (each with a documented default)

    URL.create() handles escaping of special characters in the password.
    """
    try:
        return resolve_auth_database_url(settings)
    except ConfigurationError:
        pass
    if not settings.db_host or not settings.db_name:
        raise ConfigurationError("Database connection not configured. Set DATABASE_URL or the DB_* variables.")
    url = URL.create(
        "postgresql",
        username=settings.db_user,
        password=settings.db_password,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
    )
    logger.info("Using DB_* variables for database %s on %s:%d", settings.db_name, settings.db_host, settings.db_port)
    return url.render_as_string(hide_password=False)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
