"""
tests/test_cli.py -- Tests for the operator CLI in main.py.

Covers:
  - create-user with a generated password (printed once, forces a change)
  - create-user with an explicit password, duplicate email, short password
  - purge-tokens removes only expired rows
  - no subcommand prints help and exits non-zero
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.passwords import verify_password
from auth.store import RefreshTokenStore, UserStore
from core.db import create_db_engine
from main import main


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _create(database_url: str, *extra: str) -> int:
    return main(
        [
            "--database-url",
            database_url,
            "create-user",
            "--email",
            "root@test.dev",
            "--first-name",
            "Root",
            "--last-name",
            "Admin",
            *extra,
        ]
    )


def test_create_user_with_generated_password(database_url, capsys):
    assert _create(database_url) == 0
    out = capsys.readouterr().out
    assert "Created admin 'root@test.dev'" in out
    generated = out.split("Generated password:")[1].splitlines()[0].strip()

    user = UserStore(create_db_engine(database_url)).get_active_by_email("root@test.dev")
    assert user.role == "admin"
    assert user.force_password_change is True
    assert verify_password(generated, user.password_hash)


def test_create_user_with_explicit_password(database_url, capsys):
    assert _create(database_url, "--role", "manager", "--password", "Chosen123!") == 0
    assert "Generated password" not in capsys.readouterr().out
    user = UserStore(create_db_engine(database_url)).get_active_by_email("root@test.dev")
    assert user.role == "manager"
    assert user.force_password_change is False


def test_duplicate_email_fails(database_url, capsys):
    assert _create(database_url) == 0
    assert _create(database_url) == 1
    assert "already exists" in capsys.readouterr().out


def test_short_password_fails(database_url, capsys):
    assert _create(database_url, "--password", "short") == 1
    assert "at least 8 characters" in capsys.readouterr().out


def test_password_over_72_bytes_fails(database_url, capsys):
    assert _create(database_url, "--password", "é" * 40) == 1
    assert "at most 72 bytes" in capsys.readouterr().out
    assert not UserStore(create_db_engine(database_url)).email_exists("root@test.dev")


def test_invalid_role_rejected(database_url):
    with pytest.raises(SystemExit):
        _create(database_url, "--role", "owner")


def test_purge_tokens(database_url, capsys):
    _create(database_url, "--password", "Chosen123!")
    engine = create_db_engine(database_url)
    user_id = UserStore(engine).get_active_by_email("root@test.dev").id
    store = RefreshTokenStore(engine)
    now = datetime.now(timezone.utc)
    store.store(user_id, "0" * 64, now - timedelta(hours=1))
    store.store(user_id, "1" * 64, now + timedelta(hours=1))
    capsys.readouterr()

    assert main(["--database-url", database_url, "purge-tokens"]) == 0
    assert "Purged 1 expired refresh token(s)." in capsys.readouterr().out
    assert store.get("1" * 64) is not None


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "create-user" in capsys.readouterr().out
