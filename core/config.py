"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for bsa-bridge happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Injection at startup: api/main.py lifespan and main.py place the Settings
      instance on app.state / pass it to constructors. Request-time code reads
      request.app.state.settings, so tests can inject a different instance
      without touching the environment.

  @model_validator(mode="after"): dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright (JWT signing).

  SYNC_API_KEY is the one shared secret used in both sync directions. Empty
  means "not configured": inbound sync rejects every request with 401 and
  outbound sync is skipped with a warning.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, importer/, lms/, or sync/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("bsabridge.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'bsabridge.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Field names map to upper-case
    environment variable names (sync_api_key -> SYNC_API_KEY).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    # Host headers accepted by TrustedHostMiddleware. JSON list in the env:
    # ALLOWED_HOSTS='["bridge.example.org","localhost"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Sync (shared secret used symmetrically in both directions)
    # ------------------------------------------------------------------

    sync_api_key: str = ""
    app_url: str = "https://appbarbaarintasan.com"
    sync_timeout_seconds: int = 15

    # ------------------------------------------------------------------
    # Import / LMS
    # ------------------------------------------------------------------

    # Course metadata key holding the app-side course id. Slug is the fallback.
    course_external_id_key: str = "bsa_course_id"
    # False selects NullCatalog at startup: no course mapping, no enrollments.
    lms_enabled: bool = True
    max_import_bytes: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not survive restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def sync_configured(self) -> bool:
        return bool(self.sync_api_key)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or build Settings(...)
    directly and place it on app.state.
    """
    return Settings()
