"""
core/activity.py -- Structured activity and security log channels.

Two named stdlib loggers carry the operational trail:
  saiqa.activity -- INFO lines for auth events and entity management
  saiqa.security -- WARNING lines for failed logins, password resets and
                    other events an operator should be able to grep for

Each line is "<CHANNEL> <action> key=value ...". Keys are sorted so the same
event always renders the same way. This is the human-facing log; the
durable, queryable trail is the audit_logs table (audit/store.py).

Never pass secrets (passwords, tokens, hashes) as detail values.
"""

from __future__ import annotations

import logging

activity_logger = logging.getLogger("saiqa.activity")
security_logger = logging.getLogger("saiqa.security")


def _render(details: dict) -> str:
    return " ".join(f"{key}={details[key]}" for key in sorted(details) if details[key] is not None)


def log_auth(action: str, **details) -> None:
    """Successful authentication lifecycle events (LOGIN_SUCCESS, LOGOUT, ...)."""
    activity_logger.info("AUTH %s %s", action, _render(details))


def log_entity(channel: str, action: str, entity_id: str, **details) -> None:
    """Entity management events. channel is USER, UNIT or DESIGNATION."""
    activity_logger.info("%s_MANAGEMENT %s id=%s %s", channel.upper(), action, entity_id, _render(details))


def log_security(event: str, **details) -> None:
    """Security-relevant events. Always WARNING so they survive INFO filtering."""
    security_logger.warning("SECURITY %s %s", event, _render(details))
