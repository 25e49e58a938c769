"""
auth/tokens.py -- Access / refresh JWT codec.

Security design decisions:
  JWT: python-jose with HS256. Two token classes share one claim shape
       (user_id, email, role, jti, iat, exp) but are signed with independent
       secrets and carry independent lifetimes (default 15 minutes / 7 days).
       An access token therefore never verifies as a refresh token and vice
       versa.

  Verification returns None on any failure -- bad signature, malformed
       structure, missing claim, expiry. Callers get one "invalid token"
       outcome and cannot tell the reasons apart; the route layer turns None
       into a 401.

  jti: a random per-token ID. Two logins for the same user within the same
       second would otherwise produce byte-identical refresh tokens, and so
       identical storage digests, and logging out one session would revoke
       both.

  Storage digest: refresh tokens are persisted as SHA-256(token) hex. The
       token is already a high-entropy signed value, so a fast deterministic
       hash is enough and allows an indexed equality lookup. bcrypt's
       intentional slowness is unnecessary here.

  Access tokens are stateless: nothing is stored and nothing is checked
       against a revocation list. Logout cannot shorten an access token's life.

Configuration is injected: TokenCodec(settings) is built once at startup and
shared through app.state. This module never reads the environment.

Layer rule: no imports from api/, org/, or audit/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.models import TokenClaims

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("saiqa.auth")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("user_id", "email", "role", "exp")


class TokenCodec:
    """Signs and verifies the two bearer-token classes.

    Usage:
        codec = TokenCodec(settings)
        token = codec.sign_access(user.id, user.email, user.role)
        claims = codec.verify_access(token)   # TokenClaims or None
    """

    def __init__(self, settings: Settings) -> None:
        self._access_secret = settings.jwt_access_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self.access_lifetime: timedelta = settings.jwt_access_expiry
        self.refresh_lifetime: timedelta = settings.jwt_refresh_expiry

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_access(self, user_id: str, email: str, role: str) -> str:
        return self._sign(user_id, email, role, self._access_secret, self.access_lifetime)

    def sign_refresh(self, user_id: str, email: str, role: str) -> str:
        return self._sign(user_id, email, role, self._refresh_secret, self.refresh_lifetime)

    def _sign(self, user_id: str, email: str, role: str, secret: str, lifetime: timedelta) -> str:
        issued = datetime.now(timezone.utc)
        payload = {
            "user_id": str(user_id),
            "email": email,
            "role": role,
            "jti": uuid.uuid4().hex,
            "iat": int(issued.timestamp()),
            "exp": int((issued + lifetime).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_access(self, token: str | None) -> TokenClaims | None:
        return self._verify(token, self._access_secret)

    def verify_refresh(self, token: str | None) -> TokenClaims | None:
        return self._verify(token, self._refresh_secret)

    def _verify(self, token: str | None, secret: str) -> TokenClaims | None:
        """Decode and verify a JWT. Returns TokenClaims or None on any failure.

        jwt.decode() checks the signature and the exp claim together. Returning
        None (rather than raising) keeps the caller simple: any invalid token is
        treated as unauthenticated.
        """
        if not token or not isinstance(token, str):
            return None
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if any(not payload.get(claim) for claim in _REQUIRED_CLAIMS):
            return None
        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
            issued_at = (
                datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc) if payload.get("iat") is not None else None
            )
        except (TypeError, ValueError, OverflowError):
            return None
        return TokenClaims(
            user_id=str(payload["user_id"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
            jti=str(payload.get("jti") or ""),
            issued_at=issued_at,
            expires_at=expires_at,
        )

    # ------------------------------------------------------------------
    # Storage digest
    # ------------------------------------------------------------------

    @staticmethod
    def hash_for_storage(token: str) -> str:
        """Return SHA-256(token) as 64 hex chars. Irreversible; used for lookup only."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
