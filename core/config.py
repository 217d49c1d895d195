"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the portal happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens every session token.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

  [S1] Session lifetime is capped at 7 days. A longer TOKEN_EXPIRE_SECONDS is
       a startup failure, not a silent clamp.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gameportal.config")

MAX_SESSION_SECONDS = 7 * 24 * 3600


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The defaults are the production
    policy values (lockout threshold, token lifetimes, hashing cost).
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
    database_url: str = ""
    app_url: str = "http://localhost:5000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:5000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = MAX_SESSION_SECONDS

    # ------------------------------------------------------------------
    # Password hashing (Argon2id)
    # ------------------------------------------------------------------

    argon2_memory_cost: int = 19456  # KiB (19 MiB)
    argon2_time_cost: int = 2
    argon2_parallelism: int = 1

    # ------------------------------------------------------------------
    # Password policy
    # ------------------------------------------------------------------

    password_min_length: int = 8
    password_max_length: int = 100
    extra_common_passwords: list[str] = []

    # ------------------------------------------------------------------
    # Lockout
    # ------------------------------------------------------------------

    lockout_max_attempts: int = 5
    lockout_duration_seconds: int = 30 * 60
    origin_max_attempts: int = 5
    origin_lockout_seconds: int = 30 * 60
    inactivity_days: int = 90

    # ------------------------------------------------------------------
    # CSRF
    # ------------------------------------------------------------------

    csrf_token_ttl_seconds: int = 24 * 3600
    csrf_exempt_paths: list[str] = [
        "/api/v1/auth/register",
        "/api/v1/auth/login",
        "/api/v1/auth/password-strength",
        "/api/v1/auth/forgot-password",
        "/api/v1/auth/reset-password",
    ]

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    reset_token_ttl_seconds: int = 3600
    reset_request_cooldown_seconds: int = 15 * 60
    reset_origin_limit: int = 3
    reset_origin_window_seconds: int = 3600
    # Every non-throttled forgot-password response waits at least
    # min_delay + uniform(0, jitter) seconds.
    reset_min_delay_seconds: float = 1.0
    reset_delay_jitter_seconds: float = 1.0

    # ------------------------------------------------------------------
    # Background maintenance
    # ------------------------------------------------------------------

    sweep_interval_seconds: int = 60
    inactivity_sweep_interval_seconds: int = 24 * 3600

    # ------------------------------------------------------------------
    # Rate limiting and registration
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    api_rate_limit: str = "100 per 15 minutes"
    self_registration_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_token_lifetime(self) -> "Settings":
        """Reject session lifetimes outside (0, 7 days] [S1]."""
        if not 0 < self.token_expire_seconds <= MAX_SESSION_SECONDS:
            raise ValueError(f"TOKEN_EXPIRE_SECONDS must be between 1 and {MAX_SESSION_SECONDS}.")
        if self.password_min_length > self.password_max_length:
            raise ValueError("PASSWORD_MIN_LENGTH cannot exceed PASSWORD_MAX_LENGTH.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
