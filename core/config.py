"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Saiqa happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() at the
composition root (asgi.py, main.py) and pass the Settings object down.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit injection: TokenCodec, CookiePolicy and create_app() receive the
      Settings instance as a constructor argument. Business logic never calls
      get_settings() itself, which keeps tests free to build their own
      Settings(...) without touching the environment.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. Implements the secret policy: outside production a missing
      signing secret is generated with a warning; in production it is a hard
      startup failure.

Security notes:
  [S1] Access and refresh tokens are signed with independent secrets. In
       production the two secrets must differ, otherwise a refresh token
       would verify as an access token.

  [S2] Secrets shorter than 32 chars are rejected outright. HS256 relies on
       key entropy -- a short key weakens every issued token.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
org/, or audit/.
"""

import logging
import re
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("saiqa.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'saiqa.db'}"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value) -> timedelta:
    """Parse a lifetime such as "15m", "7d", "3600" or a timedelta.

    Plain integers are seconds. Zero and negative lifetimes are rejected --
    a token that expires at issue time is always a configuration mistake.
    """
    if isinstance(value, timedelta):
        seconds = int(value.total_seconds())
    elif isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_RE.match(str(value).lower())
        if match is None:
            raise ValueError(f"Invalid duration {value!r}. Use e.g. '30s', '15m', '12h', '7d'.")
        seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError("Token lifetimes must be positive.")
    return timedelta(seconds=seconds)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.

    Environment variable name mapping: field names are uppercased
    automatically. E.g. `jwt_access_secret` reads from JWT_ACCESS_SECRET.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    environment: str = "development"
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""
    jwt_access_expiry: timedelta = timedelta(minutes=15)
    jwt_refresh_expiry: timedelta = timedelta(days=7)
    # Off by default: refresh only mints a new access token. When on, every
    # refresh revokes the presented refresh token and issues a replacement.
    rotate_refresh_tokens: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3001"]

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def secure_cookies(self) -> bool:
        """Cookies carry the Secure attribute only in production."""
        return self.is_production

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_access_expiry", "jwt_refresh_expiry", mode="before")
    @classmethod
    def parse_expiry(cls, value) -> timedelta:
        return parse_duration(value)

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-secret policy [S1][S2].

        Non-production: auto-generate each missing secret with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production: refuse to start if either secret is missing or if both
            secrets are identical.

        Both modes: reject secrets shorter than 32 characters.
        """
        for field_name in ("jwt_access_secret", "jwt_refresh_secret"):
            if getattr(self, field_name):
                continue
            if self.is_production:
                raise ValueError(
                    f"{field_name.upper()} is required in production mode. "
                    "Set it in your environment or .env file."
                )
            setattr(self, field_name, secrets.token_hex(32))
            logger.warning(
                "WARNING: Using auto-generated %s. Sessions will not persist across restarts.",
                field_name.upper(),
            )
        for field_name in ("jwt_access_secret", "jwt_refresh_secret"):
            if len(getattr(self, field_name)) < 32:
                raise ValueError(f"{field_name.upper()} must be at least 32 characters.")
        if self.is_production and self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    Only the composition roots (asgi.py, main.py) should call this; everything
    else receives the instance as an argument.

    In tests: build Settings(...) directly, or call get_settings.cache_clear()
    between test cases if you need to inject different environment variables.
    """
    return Settings()
