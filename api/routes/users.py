"""
api/routes/users.py -- User management REST endpoints.

Routes:
  GET    /api/users                       -- paginated list (manager or admin)
  GET    /api/users/me/preferences        -- caller's preferences (any role)
  PUT    /api/users/me/preferences        -- replace caller's preferences (any role)
  GET    /api/users/{id}                  -- one user (manager or admin)
  POST   /api/users                       -- create (manager or admin)
  PUT    /api/users/{id}                  -- partial update (manager or admin)
  DELETE /api/users/{id}                  -- soft delete (manager or admin)
  POST   /api/users/{id}/reset-password   -- admin password reset (admin only)

Security:
  Role gates come from auth.dependencies; per-target rules (self-protection,
  admin accounts, role grants) from auth.rbac. Both run before any write.
  Deactivating or deleting an account revokes all of its refresh tokens, so
  the account is signed out once its current access token expires.
  A generated password is returned exactly once, in the create response.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import (
    MessageResponse,
    Pagination,
    PreferencesResponse,
    ResetPasswordRequest,
    UserCreate,
    UserEnvelope,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from api.request_context import record_audit, request_info
from audit import models as audit_models
from auth.dependencies import admin_only, authenticate, manager_or_admin
from auth.models import TokenClaims, User
from auth.passwords import generate_secure_password, hash_password
from auth.rbac import ensure_can_assign_role, ensure_can_manage, ensure_not_self
from auth.sessions import ensure_acceptable_password
from auth.store import UserStore
from core.activity import log_entity
from core.errors import ErrorKind, ServiceError

# Auth policy:
# - every route:                      requires auth (router dependency)
# - /users/me/preferences:            any role
# - reset-password:                   admin only
# - everything else:                  manager or admin
router = APIRouter(dependencies=[Depends(authenticate)])

# Columns that cannot be NULL; an explicit null in the body is ignored for these.
_NOT_NULL_FIELDS = ("first_name", "last_name", "role", "is_active", "metadata")


def _user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def _require_user(request: Request, user_id: str) -> User:
    user = _user_store(request).get_profile(user_id)
    if user is None:
        raise ServiceError(ErrorKind.NOT_FOUND, "User not found")
    return user


def _check_assignments(request: Request, unit_id: Optional[str], designation_id: Optional[str]) -> None:
    if unit_id and request.app.state.unit_store.get(unit_id) is None:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "Unit not found")
    if designation_id and request.app.state.designation_store.get(designation_id) is None:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "Designation not found")


# ---------------------------------------------------------------------------
# Self-service preferences (any authenticated role)
# ---------------------------------------------------------------------------


@router.get("/users/me/preferences", response_model=PreferencesResponse)
def get_preferences(request: Request, identity: TokenClaims = Depends(authenticate)) -> PreferencesResponse:
    preferences = _user_store(request).get_preferences(identity.user_id)
    if preferences is None:
        raise ServiceError(ErrorKind.NOT_FOUND, "User not found")
    return PreferencesResponse(preferences=preferences)


@router.put("/users/me/preferences", response_model=PreferencesResponse)
def update_preferences(
    request: Request,
    preferences: dict[str, Any] = Body(...),
    identity: TokenClaims = Depends(authenticate),
) -> PreferencesResponse:
    """Replace the caller's preferences object wholesale (no merge)."""
    store = _user_store(request)
    old = store.get_preferences(identity.user_id)
    if old is None:
        raise ServiceError(ErrorKind.NOT_FOUND, "User not found")
    store.set_preferences(identity.user_id, preferences)
    record_audit(
        request,
        actor_id=identity.user_id,
        action=audit_models.UPDATE_PREFERENCES,
        entity_type="user",
        entity_id=identity.user_id,
        old=old,
        new=preferences,
    )
    log_entity("USER", "UPDATE_PREFERENCES", identity.user_id, **request_info(request).as_details())
    return PreferencesResponse(preferences=preferences)


# ---------------------------------------------------------------------------
# Management (manager or admin)
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str = Query(default="", max_length=255),
    role: str = Query(default=""),
    unit_id: str = Query(default="", alias="unitId"),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    actor: TokenClaims = Depends(manager_or_admin),
) -> UserListResponse:
    users, total = _user_store(request).list_users(
        page=page, limit=limit, search=search, role=role, unit_id=unit_id, is_active=is_active
    )
    return UserListResponse(
        users=[UserResponse.from_user(u) for u in users],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/users/{user_id}", response_model=UserEnvelope)
def get_user(request: Request, user_id: str, actor: TokenClaims = Depends(manager_or_admin)) -> UserEnvelope:
    return UserEnvelope(user=UserResponse.from_user(_require_user(request, user_id)))


@router.post("/users", status_code=201)
def create_user(request: Request, body: UserCreate, actor: TokenClaims = Depends(manager_or_admin)) -> JSONResponse:
    """Create an account. It must change its password at first login.

    Returns {"user": ...} plus "generatedPassword" when no password was given.
    """
    ensure_can_manage(actor, body.role, action="create")
    ensure_can_assign_role(actor, None, body.role)

    password = body.password or generate_secure_password(12)
    ensure_acceptable_password(password)

    store = _user_store(request)
    if store.email_exists(body.email):
        raise ServiceError(ErrorKind.CONFLICT, "Email already exists")
    _check_assignments(request, body.unit_id, body.designation_id)

    try:
        user_id = store.create_user(
            User(
                email=body.email,
                password_hash=hash_password(password),
                first_name=body.first_name,
                last_name=body.last_name,
                role=body.role,
                unit_id=body.unit_id,
                designation_id=body.designation_id,
                force_password_change=True,
                metadata=body.metadata,
                created_by=actor.user_id,
            )
        )
    except IntegrityError:
        raise ServiceError(ErrorKind.CONFLICT, "Email already exists")

    user = _require_user(request, user_id)
    record_audit(
        request, actor_id=actor.user_id, action=audit_models.CREATE, entity_type="user", entity_id=user_id, new=user
    )
    log_entity(
        "USER",
        "CREATE_USER",
        user_id,
        created_by=actor.user_id,
        email=user.email,
        role=user.role,
        **request_info(request).as_details(),
    )

    content: dict[str, Any] = {"user": UserResponse.from_user(user).model_dump(by_alias=True)}
    if not body.password:
        content["generatedPassword"] = password
    return JSONResponse(status_code=201, content=content)


@router.put("/users/{user_id}", response_model=UserEnvelope)
def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    actor: TokenClaims = Depends(manager_or_admin),
) -> UserEnvelope:
    current = _require_user(request, user_id)
    ensure_can_manage(actor, current.role, action="update")

    fields = body.model_dump(exclude_unset=True)
    for name in _NOT_NULL_FIELDS:
        if name in fields and fields[name] is None:
            del fields[name]
    if not fields:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "At least one field must be provided for update")
    if "role" in fields:
        ensure_can_assign_role(actor, current.role, fields["role"])
    if fields.get("is_active") is False:
        ensure_not_self(actor, user_id, "deactivate")
    _check_assignments(request, fields.get("unit_id"), fields.get("designation_id"))

    store = _user_store(request)
    store.update_user(user_id, actor.user_id, **fields)
    if fields.get("is_active") is False:
        request.app.state.refresh_token_store.revoke_all_for_user(user_id)

    updated = _require_user(request, user_id)
    record_audit(
        request,
        actor_id=actor.user_id,
        action=audit_models.UPDATE,
        entity_type="user",
        entity_id=user_id,
        old=current,
        new=updated,
    )
    log_entity(
        "USER",
        "UPDATE_USER",
        user_id,
        updated_by=actor.user_id,
        fields=",".join(sorted(fields)),
        **request_info(request).as_details(),
    )
    return UserEnvelope(user=UserResponse.from_user(updated))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(request: Request, user_id: str, actor: TokenClaims = Depends(manager_or_admin)) -> MessageResponse:
    """Soft delete. The row stays so audit entries keep resolving."""
    current = _require_user(request, user_id)
    ensure_not_self(actor, user_id, "delete")
    ensure_can_manage(actor, current.role, action="delete")

    _user_store(request).deactivate(user_id, actor.user_id)
    request.app.state.refresh_token_store.revoke_all_for_user(user_id)

    record_audit(
        request, actor_id=actor.user_id, action=audit_models.DELETE, entity_type="user", entity_id=user_id, old=current
    )
    log_entity("USER", "DELETE_USER", user_id, deleted_by=actor.user_id, **request_info(request).as_details())
    return MessageResponse(message="User deleted successfully")


@router.post("/users/{user_id}/reset-password", response_model=MessageResponse)
def reset_password(
    request: Request,
    user_id: str,
    body: ResetPasswordRequest,
    actor: TokenClaims = Depends(admin_only),
) -> MessageResponse:
    request.app.state.sessions.reset_password(actor, user_id, body.new_password, request_info(request))
    return MessageResponse(
        message="Password reset successfully. User will be required to change password on next login."
    )
