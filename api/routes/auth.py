"""
api/routes/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/auth/login            -- password login; sets accessToken + refreshToken cookies
  POST /api/auth/refresh          -- new accessToken cookie from a valid refresh cookie
  POST /api/auth/logout           -- revokes the refresh cookie's row; clears both cookies
  POST /api/auth/change-password  -- self-service change (requires auth)
  GET  /api/auth/me               -- caller profile + access token expiry (requires auth)

Every flow is delegated to auth.sessions.SessionService. This module only
translates: cookies in, Set-Cookie headers and camelCase JSON out.

Security:
  [H2] POST /login is rate-limited per client IP (Settings.login_rate_limit).
  [M5] Cache-Control: no-store on login and refresh responses.
  Unknown email and wrong password return byte-identical 401 bodies; the
  distinction exists only in the security log.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import ChangePasswordRequest, LoginRequest, MeResponse, MessageResponse, SessionResponse, UserResponse
from api.request_context import request_info
from auth.cookies import ACCESS_COOKIE, REFRESH_COOKIE, parse_cookies
from auth.dependencies import authenticate
from auth.models import TokenClaims
from auth.sessions import SessionResult, SessionService
from auth.store import UserStore
from core.errors import ErrorKind, ServiceError

# Auth policy:
# - POST /api/auth/login:           public -- login endpoint must be unauthenticated
# - POST /api/auth/refresh:         refresh cookie only -- the access token may already be expired
# - POST /api/auth/logout:          public -- clearing cookies needs no prior auth
# - POST /api/auth/change-password: requires auth (authenticate)
# - GET  /api/auth/me:              requires auth (authenticate)
router = APIRouter()


def _session_response(result: SessionResult) -> JSONResponse:
    body = SessionResponse(
        user=UserResponse.from_user(result.user),
        requires_password_change=result.requires_password_change,
    )
    resp = JSONResponse(status_code=200, content=body.model_dump(by_alias=True))
    for cookie in result.cookies:
        resp.headers.append("set-cookie", cookie)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set both auth cookies.

    SessionService.login() runs a dummy bcrypt verify for unknown emails. Do
    NOT short-circuit on a missing user here -- that re-introduces the timing
    difference.
    """
    sessions: SessionService = request.app.state.sessions
    result = sessions.login(body.email, body.password, request_info(request))
    return _session_response(result)


@router.post("/auth/refresh", response_model=SessionResponse)
def refresh(request: Request) -> JSONResponse:
    """Mint a new access token. Only the accessToken cookie is re-set unless rotation is on."""
    sessions: SessionService = request.app.state.sessions
    token = parse_cookies(request.headers.get("cookie")).get(REFRESH_COOKIE)
    return _session_response(sessions.refresh(token))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the presented refresh token and clear both cookies. Always 200."""
    sessions: SessionService = request.app.state.sessions
    cookies = parse_cookies(request.headers.get("cookie"))
    cleared = sessions.logout(cookies.get(REFRESH_COOKIE), cookies.get(ACCESS_COOKIE), request_info(request))
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    for cookie in cleared:
        resp.headers.append("set-cookie", cookie)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: TokenClaims = Depends(authenticate),
) -> MessageResponse:
    """Change the caller's password. Every refresh token of the caller is revoked."""
    sessions: SessionService = request.app.state.sessions
    sessions.change_password(identity, body.current_password, body.new_password, request_info(request))
    return MessageResponse(message="Password changed successfully")


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, identity: TokenClaims = Depends(authenticate)) -> MeResponse:
    """Return the caller's profile with unit name and designation title.

    A token whose user row no longer exists gets a 404.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_profile(identity.user_id)
    if user is None:
        raise ServiceError(ErrorKind.NOT_FOUND, "User not found")
    return MeResponse(user=UserResponse.from_user(user), expires_at=identity.expires_at_ms())
