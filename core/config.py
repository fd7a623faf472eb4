"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for session-auth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, session_name -> SESSION_NAME).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production
      mode refuses to start without one.

Signing key:
  SECRET_KEY is the HS256 key for session cookies. Its signature is what stops
  a client forging a CookieStore payload or a MemoryStore session id, and
  rotating it ends every session.

Layer rule: core/ is the kernel. This module may not import from api/ or
sessionauth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionauth.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (as long as DEBUG=true or
    SECRET_KEY is set).
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

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_name: str = "AuthSession"
    session_lifetime_seconds: int = 300
    session_backend: Literal["cookie", "memory"] = "cookie"

    # ------------------------------------------------------------------
    # Redirects
    # ------------------------------------------------------------------

    landing_path: str = "/"
    # Empty string means "same as landing_path".
    logout_path: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_signing_key(self) -> "Settings":
        """Resolve the key that signs session cookies.

        With DEBUG on, a missing key is replaced by a random one for this
        process only, so every restart logs all users out. Without DEBUG a
        missing key stops startup. A key under 32 characters is refused in
        either mode.
        """
        if not self.secret_key and self.debug:
            self.secret_key = secrets.token_hex(32)
            logger.warning("No SECRET_KEY set; signing session cookies with a per-process random key.")
        if not self.secret_key:
            raise ValueError("SECRET_KEY is required unless DEBUG=true; it signs every session cookie.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_session_lifetime(self) -> "Settings":
        if self.session_lifetime_seconds <= 0:
            raise ValueError("SESSION_LIFETIME_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
