"""
core/db.py -- SQLAlchemy Core schema and engine factory for Saiqa.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py,
org/models.py and audit/models.py remain the authoritative domain
representation. Swapping SQLite for PostgreSQL is a connection string change.

All five tables live on one MetaData because they reference each other
(users -> units/designations, refresh_tokens -> users, audit_logs -> users).
The repositories (auth/store.py, org/store.py, audit/store.py) share one
Engine built here.

Conventions:
  - Primary keys are UUID4 strings (String(36)), generated in Python.
  - Timestamps are ISO 8601 UTC strings with microseconds. Fixed-width
    formatting keeps lexicographic order equal to chronological order, which
    the refresh-token expiry check relies on.
  - Booleans are Integer 0/1 for SQLite portability.
  - JSON blobs (metadata, preferences, changes) are Text. load_json() reads
    them back and treats missing or malformed content as an empty object.

No migration tooling: create_all() is idempotent and runs at startup.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("role", String(50), nullable=False),  # "admin" | "manager" | "user"
    Column("unit_id", String(36), ForeignKey("units.id", ondelete="SET NULL")),
    Column("designation_id", String(36), ForeignKey("designations.id", ondelete="SET NULL")),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("force_password_change", Integer, nullable=False, server_default="0"),
    Column("metadata", Text, nullable=False, server_default="{}"),
    Column("preferences", Text, nullable=False, server_default="{}"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
    Column("created_by", String(36)),
    Column("updated_by", String(36)),
    Index("idx_users_role", "role"),
    Index("idx_users_unit_id", "unit_id"),
    Index("idx_users_designation_id", "designation_id"),
)

units = Table(
    "units",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("code", String(50), nullable=False, unique=True),
    Column("description", Text),
    Column("parent_unit_id", String(36), ForeignKey("units.id", ondelete="SET NULL")),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("metadata", Text, nullable=False, server_default="{}"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
    Column("created_by", String(36)),
    Column("updated_by", String(36)),
    Index("idx_units_parent_unit_id", "parent_unit_id"),
)

designations = Table(
    "designations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("code", String(50), nullable=False, unique=True),
    Column("description", Text),
    Column("level", Integer),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("metadata", Text, nullable=False, server_default="{}"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
    Column("created_by", String(36)),
    Column("updated_by", String(36)),
    Index("idx_designations_level", "level"),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(64), nullable=False),  # SHA-256 hex of the raw token
    Column("expires_at", String(40), nullable=False),
    Column("created_at", String(40), nullable=False),
    Index("idx_refresh_tokens_user_id", "user_id"),
    Index("idx_refresh_tokens_token_hash", "token_hash"),
    Index("idx_refresh_tokens_expires_at", "expires_at"),
)

audit_logs = Table(
    "audit_logs",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36)),  # no FK: the trail must outlive the actor
    Column("action", String(50), nullable=False),
    Column("entity_type", String(100), nullable=False),
    Column("entity_id", String(36)),
    Column("changes", Text),  # JSON {"old": ..., "new": ...}
    Column("metadata", Text, nullable=False, server_default="{}"),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("created_at", String(40), nullable=False),
    Index("idx_audit_logs_entity", "entity_type", "entity_id"),
    Index("idx_audit_logs_user_id", "user_id"),
    Index("idx_audit_logs_created_at", "created_at"),
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Build the shared Engine and make sure every table exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def new_id() -> str:
    return str(uuid.uuid4())


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def load_json(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}
