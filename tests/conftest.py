"""
tests/conftest.py -- Shared test fixtures for Saiqa integration tests.

This module provides:
  - make_settings(): a Settings object that never reads the environment
  - app_client: TestClient over create_app() with a fresh SQLite file per module
  - seeded: admin / manager / user accounts created through the real UserStore
  - login / cookie_header: helpers to sign in and send cookies explicitly

Design: each test module gets its own temporary SQLite *file* (not :memory:)
because TestClient runs sync route handlers in a thread pool and the engine
opens one connection per thread.

The client's cookie jar is cleared after every login. Tests send the Cookie
header explicitly so each request carries exactly the credentials the test
means it to carry.
"""

from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.cookies import decode_value
from auth.models import User
from auth.passwords import hash_password
from core.config import Settings

ACCESS_SECRET = "test-access-secret-0123456789-abcdefghij"
REFRESH_SECRET = "test-refresh-secret-0123456789-abcdefghij"
PASSWORD = "Secret123!"


def make_settings(database_url: str, **overrides) -> Settings:
    values = {
        "environment": "test",
        "database_url": database_url,
        "jwt_access_secret": ACCESS_SECRET,
        "jwt_refresh_secret": REFRESH_SECRET,
        "rate_limit_enabled": False,
        "allowed_hosts": ["testserver"],
    }
    values.update(overrides)
    return Settings(**values)


def set_cookie_headers(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def cookies_from(resp) -> dict[str, str]:
    """Name -> decoded value of every Set-Cookie in a response (attributes dropped)."""
    cookies: dict[str, str] = {}
    for header in set_cookie_headers(resp):
        name, _, value = header.split(";", 1)[0].partition("=")
        cookies[name.strip()] = decode_value(value.strip())
    return cookies


def cookie_header(**cookies: str) -> dict[str, str]:
    """Build request headers carrying the given cookies."""
    return {"Cookie": "; ".join(f"{name}={value}" for name, value in cookies.items())}


def seed_user(client: TestClient, email: str, role: str, password: str = PASSWORD, **fields) -> User:
    store = client.app.state.user_store
    user_id = store.create_user(
        User(
            email=email,
            password_hash=hash_password(password),
            first_name=fields.pop("first_name", role.title()),
            last_name=fields.pop("last_name", "Tester"),
            role=role,
            **fields,
        )
    )
    return store.get_by_id(user_id)


@pytest.fixture(scope="module")
def app_client(tmp_path_factory) -> Generator[TestClient, None, None]:
    """TestClient over a real app with an isolated database file."""
    db_path = tmp_path_factory.mktemp("db") / "saiqa_test.db"
    app = create_app(make_settings(f"sqlite:///{db_path}"))
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture(scope="module")
def seeded(app_client: TestClient) -> dict[str, User]:
    """One account per role. The admin is the admin@test.dev / Secret123! account."""
    return {
        "admin": seed_user(app_client, "admin@test.dev", "admin"),
        "manager": seed_user(app_client, "manager@test.dev", "manager"),
        "user": seed_user(app_client, "user@test.dev", "user"),
    }


@pytest.fixture
def login(app_client: TestClient, seeded) -> Callable[..., dict[str, str]]:
    """Return a function that signs in and returns {"accessToken": ..., "refreshToken": ...}."""

    def _login(email: str, password: str = PASSWORD) -> dict[str, str]:
        resp = app_client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        app_client.cookies.clear()
        return cookies_from(resp)

    return _login


@pytest.fixture
def as_role(login) -> Callable[[str], dict[str, str]]:
    """Return a function mapping a role name to request headers for that seeded account."""

    def _as_role(role: str) -> dict[str, str]:
        tokens = login(f"{role}@test.dev")
        return cookie_header(accessToken=tokens["accessToken"])

    return _as_role


@pytest.fixture(autouse=True)
def _fresh_cookie_jar(request) -> Generator[None, None, None]:
    """Keep cookies set by one request from riding along on the next test's requests."""
    client = request.getfixturevalue("app_client") if "app_client" in request.fixturenames else None
    if client is not None:
        client.cookies.clear()
    yield
    if client is not None:
        client.cookies.clear()
