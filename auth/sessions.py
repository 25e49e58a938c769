"""
auth/sessions.py -- The credential-pair lifecycle: login, refresh, logout,
change password and admin password reset.

SessionService is the one place these flows live. Routes translate HTTP into
calls here and SessionResult back into a response; they do not sign tokens,
touch the refresh-token table or build cookies themselves.

Security design decisions:
  Login failure is uniform. Unknown email, inactive account and wrong password
      all raise INVALID_CREDENTIALS with the same message. The reason goes to
      the security log only. For an unknown email the password is still
      verified against DUMMY_HASH so response time does not leak existence.

  Refresh does not rotate by default. The presented refresh token stays valid
      until it expires or is revoked. With rotate_refresh_tokens=True each
      refresh revokes the presented row and issues a replacement.

  Password change and admin reset revoke every refresh token of the user.
      Access tokens already issued stay valid until they expire; there is no
      access-token revocation list.

  Logout never fails on a missing, expired or already revoked cookie. It
      always clears both cookies.

Layer rule: no imports from api/ or org/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from audit import models as audit_models
from audit.models import AuditLogEntry, RequestInfo
from audit.store import AuditStore
from auth.cookies import ACCESS_COOKIE, REFRESH_COOKIE, CookiePolicy
from auth.models import TokenClaims, User
from auth.passwords import DUMMY_HASH, hash_password, password_problem, verify_password
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenCodec
from core.activity import log_auth, log_security
from core.errors import ErrorKind, ServiceError


@dataclass
class SessionResult:
    """What login and refresh hand back to the route layer.

    cookies holds complete Set-Cookie header values, in emission order.
    """

    user: User
    requires_password_change: bool
    cookies: list[str] = field(default_factory=list)


class SessionService:
    """Login / refresh / logout / password flows over the auth stores.

    Usage:
        sessions = SessionService(user_store, refresh_store, codec, policy, audit_store)
        result = sessions.login("admin@example.com", "Secret123!", info)
    """

    def __init__(
        self,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        codec: TokenCodec,
        cookies: CookiePolicy,
        audit: AuditStore,
        rotate_refresh_tokens: bool = False,
    ) -> None:
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.codec = codec
        self.cookies = cookies
        self.audit = audit
        self.rotate_refresh_tokens = rotate_refresh_tokens

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, info: RequestInfo) -> SessionResult:
        user = self.users.get_active_by_email(email)
        if user is None:
            verify_password(password, DUMMY_HASH)
            log_security("LOGIN_FAILED", email=email, reason="User not found", **info.as_details())
            raise ServiceError(ErrorKind.INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            log_security("LOGIN_FAILED", email=email, reason="Invalid password", **info.as_details())
            raise ServiceError(ErrorKind.INVALID_CREDENTIALS)

        access_token = self.codec.sign_access(user.id, user.email, user.role)
        refresh_token = self._issue_refresh(user)

        self.audit.record(
            AuditLogEntry(
                user_id=user.id,
                action=audit_models.LOGIN,
                entity_type="user",
                entity_id=user.id,
                ip_address=info.ip_address,
                user_agent=info.user_agent,
            )
        )
        log_auth("LOGIN_SUCCESS", user_id=user.id, email=user.email, role=user.role, **info.as_details())

        return SessionResult(
            user=user,
            requires_password_change=user.force_password_change,
            cookies=[
                self.cookies.issue(ACCESS_COOKIE, access_token, self.codec.access_lifetime),
                self.cookies.issue(REFRESH_COOKIE, refresh_token, self.codec.refresh_lifetime),
            ],
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str | None) -> SessionResult:
        if not refresh_token:
            raise ServiceError(ErrorKind.REFRESH_REQUIRED)
        claims = self.codec.verify_refresh(refresh_token)
        if claims is None:
            raise ServiceError(ErrorKind.INVALID_OR_EXPIRED_TOKEN, "Invalid refresh token")
        digest = self.codec.hash_for_storage(refresh_token)
        if not self.refresh_tokens.is_valid(digest, claims.user_id):
            raise ServiceError(ErrorKind.INVALID_OR_EXPIRED_TOKEN, "Invalid or expired refresh token")
        user = self.users.get_active_by_id(claims.user_id)
        if user is None:
            raise ServiceError(ErrorKind.USER_NOT_FOUND)

        # Role and email come from the current row, not the old claims, so a
        # role change takes effect at the next refresh.
        access_token = self.codec.sign_access(user.id, user.email, user.role)
        cookies = [self.cookies.issue(ACCESS_COOKIE, access_token, self.codec.access_lifetime)]

        if self.rotate_refresh_tokens:
            self.refresh_tokens.revoke(digest)
            replacement = self._issue_refresh(user)
            cookies.append(self.cookies.issue(REFRESH_COOKIE, replacement, self.codec.refresh_lifetime))
            log_auth("REFRESH_ROTATED", user_id=user.id)

        return SessionResult(user=user, requires_password_change=user.force_password_change, cookies=cookies)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, refresh_token: str | None, access_token: str | None, info: RequestInfo) -> list[str]:
        """Revoke the presented refresh token (if any) and return the clearing cookies.

        The caller is identified from the refresh token, falling back to the
        access token, purely so the LOGOUT event can be attributed. An
        anonymous logout still succeeds.
        """
        identity: TokenClaims | None = None
        if refresh_token:
            self.refresh_tokens.revoke(self.codec.hash_for_storage(refresh_token))
            identity = self.codec.verify_refresh(refresh_token)
        if identity is None and access_token:
            identity = self.codec.verify_access(access_token)

        if identity is not None:
            self.audit.record(
                AuditLogEntry(
                    user_id=identity.user_id,
                    action=audit_models.LOGOUT,
                    entity_type="user",
                    entity_id=identity.user_id,
                    ip_address=info.ip_address,
                    user_agent=info.user_agent,
                )
            )
            log_auth("LOGOUT", user_id=identity.user_id, **info.as_details())

        return [self.cookies.clear(ACCESS_COOKIE), self.cookies.clear(REFRESH_COOKIE)]

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(self, identity: TokenClaims, current_password: str, new_password: str, info: RequestInfo) -> None:
        """Self-service change. Signs the user out everywhere else."""
        ensure_acceptable_password(new_password)
        user = self.users.get_by_id(identity.user_id)
        if user is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "User not found")
        if not verify_password(current_password, user.password_hash):
            log_security("CHANGE_PASSWORD_FAILED", user_id=user.id, reason="Invalid current password", **info.as_details())
            raise ServiceError(ErrorKind.INVALID_CREDENTIALS, "Current password is incorrect")

        self.users.set_password(user.id, hash_password(new_password), force_change=False, updated_by=user.id)
        revoked = self.refresh_tokens.revoke_all_for_user(user.id)

        self.audit.record(
            AuditLogEntry(
                user_id=user.id,
                action=audit_models.CHANGE_PASSWORD,
                entity_type="user",
                entity_id=user.id,
                ip_address=info.ip_address,
                user_agent=info.user_agent,
            )
        )
        log_auth("CHANGE_PASSWORD", user_id=user.id, revoked_sessions=revoked, **info.as_details())

    def reset_password(self, actor: TokenClaims, target_id: str, new_password: str, info: RequestInfo) -> User:
        """Admin reset. The target must change the password at next login."""
        ensure_acceptable_password(new_password)
        user = self.users.get_by_id(target_id)
        if user is None:
            raise ServiceError(ErrorKind.NOT_FOUND, "User not found")

        self.users.set_password(user.id, hash_password(new_password), force_change=True, updated_by=actor.user_id)
        revoked = self.refresh_tokens.revoke_all_for_user(user.id)

        self.audit.record(
            AuditLogEntry(
                user_id=actor.user_id,
                action=audit_models.RESET_PASSWORD,
                entity_type="user",
                entity_id=user.id,
                ip_address=info.ip_address,
                user_agent=info.user_agent,
            )
        )
        log_security(
            "RESET_PASSWORD",
            user_id=user.id,
            email=user.email,
            reset_by=actor.user_id,
            revoked_sessions=revoked,
            **info.as_details(),
        )
        return user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_refresh(self, user: User) -> str:
        """Sign a refresh token and persist its digest. Returns the raw token."""
        token = self.codec.sign_refresh(user.id, user.email, user.role)
        expires_at = datetime.now(timezone.utc) + self.codec.refresh_lifetime
        self.refresh_tokens.store(user.id, self.codec.hash_for_storage(token), expires_at)
        return token


def ensure_acceptable_password(password: str) -> None:
    """Raise VALIDATION_ERROR for a new password that is too short or too long to hash."""
    problem = password_problem(password)
    if problem is not None:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, problem)
