"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the starter kit happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). List fields (route tables, hosts) are
      read as JSON arrays, e.g. PUBLIC_ROUTES='["/", "/api/health"]'.

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY logic. Dev
      mode generates a key with a warning; production refuses to start
      without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Session JWTs are
  signed with it, so a short key weakens every session.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, rbac/, audit/, uploads/, or gatekeeper/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("starterkit.config")

APP_VERSION = "1.0.0"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    app_name: str = "Starter Kit"
    debug: bool = False
    environment: str = "development"  # "development" | "production" | "test"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///starterkit.db"
    log_level: str = "INFO"

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_cookie_name: str = "starter_kit.session_token"
    session_max_age_seconds: int = 60 * 60 * 24 * 7  # 7 days
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Rate limiting (gatekeeper, fixed window, milliseconds)
    # ------------------------------------------------------------------

    rate_limit_max: int = 100
    rate_limit_window_ms: int = 60_000
    # Per-class overrides. 0 means "fall back to rate_limit_max / window".
    auth_rate_limit_max: int = 5
    auth_rate_limit_window_ms: int = 0
    api_rate_limit_max: int = 0
    api_rate_limit_window_ms: int = 0
    rate_limit_sweep_seconds: int = 60

    # Per-route limit for uploads, slowapi syntax.
    upload_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Route table
    # ------------------------------------------------------------------

    login_path: str = "/login"
    dashboard_path: str = "/dashboard"
    api_prefix: str = "/api"
    auth_api_prefix: str = "/api/auth"
    # "=" prefix marks an exact-match entry; everything else matches the
    # path itself and anything below it.
    public_routes: list[str] = [
        "=/",
        "/reset-password",
        "/verify-email",
        "/api/health",
        "/api/auth",
        "/static",
    ]
    guest_only_routes: list[str] = ["/login", "/register", "/forgot-password"]
    protected_routes: list[str] = ["/dashboard", "/profile", "/settings", "/api"]

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    max_file_size: int = 5 * 1024 * 1024  # 5 MiB
    # Not "./uploads": that is the uploads/ package directory.
    upload_dir: str = "./data/uploads"

    # ------------------------------------------------------------------
    # OAuth providers (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    github_client_id: str = ""
    github_client_secret: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def auth_rate_limit(self) -> tuple[int, int]:
        """(max, window_ms) for /api/auth routes."""
        return (
            self.auth_rate_limit_max or self.rate_limit_max,
            self.auth_rate_limit_window_ms or self.rate_limit_window_ms,
        )

    @property
    def api_rate_limit(self) -> tuple[int, int]:
        """(max, window_ms) for every other /api route."""
        return (
            self.api_rate_limit_max or self.rate_limit_max,
            self.api_rate_limit_window_ms or self.rate_limit_window_ms,
        )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
