"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and
role gates.

authenticate() is the authentication gate. It reads the accessToken cookie,
verifies it, and attaches the claims to request.state.identity. It never
consults the database: an access token is trusted for its whole lifetime.

authorize(*roles) builds a role gate that reads request.state.identity. Use it
together with authenticate (routers list authenticate in their dependencies,
so it always runs first):

    router = APIRouter(dependencies=[Depends(authenticate)])

    @router.delete("/users/{user_id}")
    def delete_user(user_id: str, actor: TokenClaims = Depends(manager_or_admin)): ...

Both fail closed: any unexpected error inside authenticate() becomes a 401,
never a pass.

auth/dependencies.py may import from fastapi (for Request) because this module
is part of the FastAPI dependency injection system.

Layer rule: no imports from api/ or org/.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.cookies import ACCESS_COOKIE, parse_cookies
from auth.models import TokenClaims
from core.errors import ErrorKind, ServiceError

logger = logging.getLogger("saiqa.auth")


def authenticate(request: Request) -> TokenClaims:
    """Require a valid access-token cookie. Returns the verified claims.

    Raises:
      AUTHENTICATION_REQUIRED  -- no accessToken cookie
      INVALID_OR_EXPIRED_TOKEN -- bad signature, malformed or expired token
      AUTHENTICATION_FAILED    -- anything unexpected while checking
    """
    try:
        token = parse_cookies(request.headers.get("cookie")).get(ACCESS_COOKIE)
        if not token:
            raise ServiceError(ErrorKind.AUTHENTICATION_REQUIRED)
        claims = request.app.state.token_codec.verify_access(token)
        if claims is None:
            raise ServiceError(ErrorKind.INVALID_OR_EXPIRED_TOKEN)
    except ServiceError:
        raise
    except Exception:
        logger.exception("Authentication error on %s %s", request.method, request.url.path)
        raise ServiceError(ErrorKind.AUTHENTICATION_FAILED)
    request.state.identity = claims
    return claims


def current_identity(request: Request) -> TokenClaims:
    """The claims attached by authenticate(). Raises 401 when it has not run."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise ServiceError(ErrorKind.AUTHENTICATION_REQUIRED)
    return identity


def authorize(*roles: str):
    """Build a dependency that admits only the given roles.

    Returns the caller's TokenClaims so handlers can use them directly.
    """
    allowed = frozenset(roles)

    def gate(request: Request) -> TokenClaims:
        identity = current_identity(request)
        if identity.role not in allowed:
            raise ServiceError(ErrorKind.INSUFFICIENT_PERMISSIONS)
        return identity

    return gate


admin_only = authorize("admin")
manager_or_admin = authorize("admin", "manager")
