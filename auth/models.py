"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in org/models.py and audit/models.py -- dataclasses own domain shape; stores
and routes do the work.

Layer rule: no imports from api/ or org/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

ROLES: tuple[str, ...] = ("admin", "manager", "user")


@dataclass
class User:
    """An account that can sign in to Saiqa.

    password_hash is the bcrypt hash and must never leave the server: routes
    serialize through api.models.UserResponse, and audit snapshots go through
    audit.models.snapshot(), both of which drop it.

    unit_name / designation_title are read-only join columns populated by
    UserStore.get_profile() and list_users(); they are None elsewhere.
    """

    email: str
    first_name: str
    last_name: str
    role: str  # "admin" | "manager" | "user"
    password_hash: str = ""
    id: str | None = None
    unit_id: str | None = None
    designation_id: str | None = None
    is_active: bool = True
    force_password_change: bool = False
    metadata: dict = field(default_factory=dict)
    preferences: dict = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    created_by: str | None = None
    updated_by: str | None = None
    unit_name: str | None = None
    designation_title: str | None = None


@dataclass
class RefreshToken:
    """A persisted refresh-token record.

    Only the SHA-256 digest of the token is stored. Revocation deletes the row;
    there is no revoked flag.
    """

    user_id: str
    token_hash: str
    expires_at: str  # ISO 8601 UTC
    id: str | None = None
    created_at: str = ""


@dataclass(frozen=True)
class TokenClaims:
    """The verified identity carried by an access or refresh token.

    This is what the authentication gate attaches to request.state.identity.
    """

    user_id: str
    email: str
    role: str
    jti: str = ""
    issued_at: datetime | None = None
    expires_at: datetime | None = None

    def expires_at_ms(self) -> int | None:
        """Expiry as milliseconds since the epoch (what browsers compare against)."""
        if self.expires_at is None:
            return None
        return int(self.expires_at.timestamp() * 1000)
