"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the account service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production mode
      refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. The session
       cookie signature relies on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. Every restart would otherwise sign everybody out.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
users/, mail/, or storage/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accounts.config")

_ROOT = Path(__file__).resolve().parent.parent


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

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = f"sqlite:///{_ROOT / 'accounts.db'}"
    # Base URL of the client application; used to build links in emails.
    public_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie: str = "session"
    session_max_age: int = 14 * 24 * 3600

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    reset_token_ttl_seconds: int = 3600
    token_purge_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    mail_backend: str = "console"  # "console", "memory" or "smtp"
    smtp_host: str = "localhost"
    smtp_port: int = 25
    mail_from: str = "Accounts <no-reply@localhost>"

    # ------------------------------------------------------------------
    # Avatars
    # ------------------------------------------------------------------

    avatar_dir: str = str(_ROOT / "uploads" / "avatars")
    avatar_max_bytes: int = 10 * 1024 * 1024

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    signin_rate_limit: str = "10/minute"
    forgot_rate_limit: str = "5/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
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
        if self.mail_backend not in ("console", "memory", "smtp"):
            raise ValueError(f"Unknown MAIL_BACKEND {self.mail_backend!r}")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
