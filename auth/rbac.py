"""
auth/rbac.py -- Role rules that go beyond "is the caller's role in the set".

The route gates (auth/dependencies.authorize) answer "may this role call this
endpoint at all". The functions here answer "may this caller do this to that
particular account", which needs the target's current role:

  ensure_not_self        -- nobody deletes or deactivates their own account
  ensure_can_manage      -- only admins touch admin accounts
  ensure_can_assign_role -- only admins grant admin; managers may move an
                            account between "user" and "manager"

Each raises ServiceError and returns None on success.

Layer rule: no imports from api/ or org/.
"""

from __future__ import annotations

from auth.models import ROLES, TokenClaims
from core.errors import ErrorKind, ServiceError

ADMIN = "admin"
MANAGER = "manager"
USER = "user"


def ensure_valid_role(role: str) -> None:
    if role not in ROLES:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid role")


def ensure_not_self(actor: TokenClaims, target_id: str, action: str) -> None:
    """action is the verb used in the message, e.g. "delete" or "deactivate"."""
    if actor.user_id == target_id:
        raise ServiceError(ErrorKind.CONFLICT, f"Cannot {action} your own account")


def ensure_can_manage(actor: TokenClaims, target_role: str, action: str = "update") -> None:
    if target_role == ADMIN and actor.role != ADMIN:
        raise ServiceError(ErrorKind.INSUFFICIENT_PERMISSIONS, f"Only admins can {action} admin users")


def ensure_can_assign_role(actor: TokenClaims, current_role: str | None, new_role: str) -> None:
    """Check a role assignment. current_role is None when creating an account."""
    ensure_valid_role(new_role)
    if new_role == current_role:
        return
    if new_role == ADMIN and actor.role != ADMIN:
        raise ServiceError(ErrorKind.INSUFFICIENT_PERMISSIONS, "Only admins can grant admin privileges")
    if actor.role not in (ADMIN, MANAGER):
        raise ServiceError(ErrorKind.INSUFFICIENT_PERMISSIONS, "Only admins and managers can change user roles")
