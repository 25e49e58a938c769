"""
audit/models.py -- The append-only audit record and snapshot helper.

An AuditLogEntry answers "who did what to which entity, from where, and what
changed". changes holds {"old": ..., "new": ...} snapshots; either side may be
None (nothing before a CREATE, nothing after a DELETE).

Snapshots are built with snapshot(), never by hand, so the password hash and
other secrets can never end up in the trail.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Any

# Actions written by the auth and management routes.
LOGIN = "LOGIN"
LOGOUT = "LOGOUT"
CHANGE_PASSWORD = "CHANGE_PASSWORD"
RESET_PASSWORD = "RESET_PASSWORD"
UPDATE_PREFERENCES = "UPDATE_PREFERENCES"
CREATE = "CREATE"
UPDATE = "UPDATE"
DELETE = "DELETE"

# Never copied into a snapshot.
_REDACTED_FIELDS = frozenset({"password_hash", "password", "token_hash"})


@dataclass
class AuditLogEntry:
    action: str
    entity_type: str  # "user" | "unit" | "designation"
    user_id: str | None = None  # the actor; None for anonymous events
    entity_id: str | None = None
    changes: dict | None = None
    metadata: dict = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    id: str | None = None
    created_at: str = ""


def snapshot(entity: Any) -> dict | None:
    """Return a JSON-safe dict of an entity with secret fields removed.

    Accepts a dataclass, a dict, or None (returned unchanged).
    """
    if entity is None:
        return None
    data = asdict(entity) if is_dataclass(entity) else dict(entity)
    return {key: value for key, value in data.items() if key not in _REDACTED_FIELDS}


@dataclass(frozen=True)
class RequestInfo:
    """Where a request came from. Built by api/request_context.request_info()."""

    ip_address: str = "unknown"
    user_agent: str = "unknown"

    def as_details(self) -> dict:
        """Keyword arguments for the core/activity log functions."""
        return {"ip": self.ip_address, "user_agent": self.user_agent}
