"""
api/request_context.py -- Per-request helpers shared by the route modules.

request_info()  -- client IP and user agent for audit entries and activity logs
record_audit()  -- build an AuditLogEntry from the request and hand it to
                   AuditStore.record(), which never raises

The client IP is the first entry of X-Forwarded-For when present (the
deployment sits behind a reverse proxy), else the socket peer address.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from audit.models import AuditLogEntry, RequestInfo, snapshot


def request_info(request: Request) -> RequestInfo:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip:
        ip = request.client.host if request.client else "unknown"
    return RequestInfo(ip_address=ip, user_agent=request.headers.get("user-agent") or "unknown")


def record_audit(
    request: Request,
    *,
    actor_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    old=None,
    new=None,
) -> None:
    """Append an audit entry with {"old", "new"} snapshots of the entity.

    old / new may be dataclasses or dicts; secret fields are stripped by
    audit.models.snapshot().
    """
    info = request_info(request)
    changes = None
    if old is not None or new is not None:
        changes = {"old": snapshot(old), "new": snapshot(new)}
    request.app.state.audit_store.record(
        AuditLogEntry(
            user_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            changes=changes,
            ip_address=info.ip_address,
            user_agent=info.user_agent,
        )
    )
