"""
tests/test_rate_limit.py -- Login rate limiting through slowapi.

The limiter is a module-level singleton shared by every app instance, so this
module enables it for its own app and restores the disabled state afterwards.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.limiter import configure_limiter, limiter
from api.main import create_app
from conftest import PASSWORD, make_settings, seed_user


@pytest.fixture
def limited_client(tmp_path):
    settings = make_settings(f"sqlite:///{tmp_path / 'limited.db'}", rate_limit_enabled=True, login_rate_limit="2/minute")
    limiter.reset()
    with TestClient(create_app(settings)) as client:
        seed_user(client, "limited@test.dev", "user")
        yield client
    limiter.reset()
    configure_limiter(make_settings("sqlite://"))


def test_login_is_limited_per_client(limited_client: TestClient) -> None:
    body = {"email": "limited@test.dev", "password": "wrong-password"}
    assert limited_client.post("/api/auth/login", json=body).status_code == 401
    assert limited_client.post("/api/auth/login", json=body).status_code == 401

    blocked = limited_client.post("/api/auth/login", json={"email": "limited@test.dev", "password": PASSWORD})
    assert blocked.status_code == 429
    assert blocked.json() == {"error": "Too many requests", "code": "rate_limited"}
    assert int(blocked.headers["Retry-After"]) > 0


def test_other_routes_are_not_limited(limited_client: TestClient) -> None:
    for _ in range(5):
        assert limited_client.get("/health").status_code == 200
