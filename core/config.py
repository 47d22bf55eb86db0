"""
core/config.py -- Centralized configuration for authcore via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- import get_settings() instead, or accept a
Settings instance as a constructor argument (preferred for testability).

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Enforces the SECRET_KEY policy after all
      fields are resolved. There is no dev-mode fallback key: a missing or
      short secret is a startup failure in every environment.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and the
  refresh-token HMAC both rely on key entropy -- a short key weakens both.

Layer rule: core/ is the kernel. This module may not import from db/ or auth/.
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Configuration consumed (never produced) by the auth core.

    Every field except secret_key has a default, so tests only need to supply
    SECRET_KEY. Environment variable names are the uppercased field names.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator below
    # turns it into a hard failure.
    secret_key: str = ""
    token_issuer: str = "authcore"
    token_audience: str = "authcore-clients"

    # ------------------------------------------------------------------
    # Lifetimes
    # ------------------------------------------------------------------

    access_token_ttl_seconds: int = Field(default=900, gt=0)
    refresh_token_ttl_seconds: int = Field(default=7 * 24 * 3600, gt=0)

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # Login throttling
    # ------------------------------------------------------------------

    login_max_failures: int = Field(default=5, ge=1)
    login_window_seconds: int = Field(default=900, gt=0)

    # ------------------------------------------------------------------
    # Database / pool
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///authcore.db"
    pool_size: int = Field(default=5, ge=1)
    pool_max_overflow: int = Field(default=10, ge=0)
    pool_timeout_seconds: float = Field(default=5.0, gt=0)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Refuse to build a Settings object without a strong signing secret.

        A weak default would let the process start and sign tokens anyone can
        forge, so both "missing" and "too short" raise ValueError, which
        pydantic surfaces as a ValidationError at startup.
        """
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
            )
        if len(self.secret_key) < MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
