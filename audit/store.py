"""
audit/store.py -- Append-only persistence for the audit trail.

Pattern: Repository + Data Mapper (same as auth/store.py).

Failure policy: record() never raises. An audit write that fails (locked
database, bad JSON, anything else) is logged with its stack trace and the
triggering operation carries on. A broken trail must not turn a successful
login or update into a 500.

There is no update or delete method. Rows are written once.

Layer rule: imports from core/ only.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import select
from sqlalchemy.engine import Engine

from audit.models import AuditLogEntry
from core.db import audit_logs, load_json, new_id, now_iso

logger = logging.getLogger("saiqa.audit")


class AuditStore:
    """Writes and reads audit_logs rows.

    Usage:
        audit = AuditStore(engine)
        audit.record(AuditLogEntry(action="LOGIN", entity_type="user", entity_id=user.id, user_id=user.id))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(self, entry: AuditLogEntry) -> str | None:
        """Append one entry. Returns the new row ID, or None if the write failed."""
        entry_id = new_id()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    audit_logs.insert().values(
                        id=entry_id,
                        user_id=entry.user_id,
                        action=entry.action,
                        entity_type=entry.entity_type,
                        entity_id=entry.entity_id,
                        changes=json.dumps(entry.changes, default=str) if entry.changes is not None else None,
                        metadata=json.dumps(entry.metadata or {}, default=str),
                        ip_address=entry.ip_address,
                        user_agent=entry.user_agent,
                        created_at=now_iso(),
                    )
                )
                conn.commit()
        except Exception:
            logger.exception("Failed to write audit entry %s %s/%s", entry.action, entry.entity_type, entry.entity_id)
            return None
        return entry_id

    def list_entries(
        self,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        user_id: str | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """Return matching entries, newest first."""
        query = select(audit_logs)
        if entity_type:
            query = query.where(audit_logs.c.entity_type == entity_type)
        if entity_id:
            query = query.where(audit_logs.c.entity_id == entity_id)
        if action:
            query = query.where(audit_logs.c.action == action)
        if user_id:
            query = query.where(audit_logs.c.user_id == user_id)
        query = query.order_by(audit_logs.c.created_at.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_entry(r) for r in rows]


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        user_id=row.user_id,
        action=row.action,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        changes=json.loads(row.changes) if row.changes else None,
        metadata=load_json(row.metadata),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )
