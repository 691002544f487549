"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the Homi auth service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit injection: only the application assembly (api/main.py lifespan)
      calls get_settings(). Auth components receive the values they need
      (secrets, TTLs, PBKDF2 parameters) through their constructors, so tests
      can build them from a hand-made Settings without touching the
      environment.

  BaseSettings (pydantic-settings): field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

Security notes:
  [M6] Token secrets shorter than 32 chars are rejected outright. HMAC-SHA256
       signing relies on key entropy -- a short key weakens every token.

  [M7] In production mode (DEBUG not set or false), a missing token secret is
       a hard startup failure. In dev mode a random per-process secret is
       generated with a warning; tokens do not survive a restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import hashlib
import logging
import secrets
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("homi.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces the
    secret policy at startup.
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
    # Empty string means "use the store's default SQLite file".
    database_url: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_ttl: int = Field(default=900, gt=0)  # 15 minutes
    refresh_token_ttl: int = Field(default=60 * 60 * 24 * 7, gt=0)  # 7 days
    max_refresh_tokens: int = Field(default=5, gt=0)

    # ------------------------------------------------------------------
    # Password hashing (PBKDF2)
    # ------------------------------------------------------------------

    auth_pbkdf2_iterations: int = Field(default=310_000, gt=0)
    auth_pbkdf2_digest: str = "sha512"
    auth_pbkdf2_key_length: int = Field(default=64, gt=0)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("auth_pbkdf2_digest")
    @classmethod
    def validate_digest(cls, value: str) -> str:
        """Reject digests hashlib cannot use for PBKDF2 before the first hash runs."""
        normalized = value.strip().lower()
        try:
            hashlib.pbkdf2_hmac(normalized, b"probe", b"salt", 1)
        except ValueError as exc:
            raise ValueError(f"Unsupported PBKDF2 digest: {value!r}") from exc
        return normalized

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the token secret policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate missing secrets with a warning.
        Production mode: refuse to start if either secret is missing.
        Both modes: reject secrets shorter than 32 characters.
        """
        for name in ("access_token_secret", "refresh_token_secret"):
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, name, value)
                logger.warning(
                    "WARNING: Using auto-generated %s. Issued tokens will not survive a restart.",
                    name.upper(),
                )
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.access_token_secret == self.refresh_token_secret:
            logger.warning("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET are identical; use distinct secrets.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
