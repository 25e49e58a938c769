"""
tests/test_config.py -- Unit tests for core/config.py.

Coverage:
  - parse_duration(): units, plain seconds, invalid and non-positive input
  - secret policy: generated outside production, required / distinct / long
    enough in production
  - environment variable mapping for durations and flags
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from core.config import Settings, parse_duration

LONG_A = "a" * 32
LONG_B = "b" * 32


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in ("ENVIRONMENT", "JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET", "JWT_ACCESS_EXPIRY", "JWT_REFRESH_EXPIRY"):
        monkeypatch.delenv(name, raising=False)


class TestParseDuration:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("15m", timedelta(minutes=15)),
            ("7d", timedelta(days=7)),
            ("12h", timedelta(hours=12)),
            ("30s", timedelta(seconds=30)),
            ("3600", timedelta(hours=1)),
            (900, timedelta(minutes=15)),
            (timedelta(minutes=2), timedelta(minutes=2)),
        ],
    )
    def test_valid(self, raw, expected: timedelta) -> None:
        assert parse_duration(raw) == expected

    @pytest.mark.parametrize("raw", ["15x", "abc", "", "-5m"])
    def test_invalid(self, raw) -> None:
        with pytest.raises(ValueError):
            parse_duration(raw)

    def test_zero_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_duration("0m")


class TestSecretPolicy:
    def test_development_generates_missing_secrets(self) -> None:
        settings = Settings(_env_file=None, environment="development")
        assert len(settings.jwt_access_secret) == 64
        assert len(settings.jwt_refresh_secret) == 64
        assert settings.jwt_access_secret != settings.jwt_refresh_secret

    def test_production_requires_secrets(self) -> None:
        with pytest.raises(ValidationError, match="JWT_ACCESS_SECRET is required"):
            Settings(_env_file=None, environment="production")

    def test_production_requires_distinct_secrets(self) -> None:
        with pytest.raises(ValidationError, match="must be different"):
            Settings(_env_file=None, environment="production", jwt_access_secret=LONG_A, jwt_refresh_secret=LONG_A)

    def test_short_secret_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 32 characters"):
            Settings(_env_file=None, jwt_access_secret="short", jwt_refresh_secret=LONG_B)

    def test_production_with_valid_secrets(self) -> None:
        settings = Settings(
            _env_file=None, environment="production", jwt_access_secret=LONG_A, jwt_refresh_secret=LONG_B
        )
        assert settings.is_production
        assert settings.secure_cookies


class TestEnvironmentMapping:
    def test_durations_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("JWT_ACCESS_EXPIRY", "30m")
        monkeypatch.setenv("JWT_REFRESH_EXPIRY", "1d")
        settings = Settings(_env_file=None)
        assert settings.jwt_access_expiry == timedelta(minutes=30)
        assert settings.jwt_refresh_expiry == timedelta(days=1)

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.jwt_access_expiry == timedelta(minutes=15)
        assert settings.jwt_refresh_expiry == timedelta(days=7)
        assert settings.rotate_refresh_tokens is False
        assert settings.secure_cookies is False
