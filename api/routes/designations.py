"""
api/routes/designations.py -- Designation (job title) REST endpoints.

Routes:
  GET    /api/designations        -- paginated list ordered by level (any role)
  GET    /api/designations/{id}   -- one designation (any role)
  POST   /api/designations        -- create (manager or admin)
  PUT    /api/designations/{id}   -- partial update (manager or admin)
  DELETE /api/designations/{id}   -- soft delete; blocked while users hold it
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    DesignationCreate,
    DesignationEnvelope,
    DesignationListResponse,
    DesignationResponse,
    DesignationUpdate,
    MessageResponse,
    Pagination,
)
from api.request_context import record_audit, request_info
from audit import models as audit_models
from auth.dependencies import authenticate, manager_or_admin
from auth.models import TokenClaims
from core.activity import log_entity
from core.errors import ErrorKind, ServiceError
from org.models import Designation
from org.store import DesignationStore

router = APIRouter(dependencies=[Depends(authenticate)])

_NOT_NULL_FIELDS = ("title", "code", "is_active", "metadata")


def _designation_store(request: Request) -> DesignationStore:
    return request.app.state.designation_store


def _require_designation(request: Request, designation_id: str) -> Designation:
    designation = _designation_store(request).get(designation_id)
    if designation is None:
        raise ServiceError(ErrorKind.NOT_FOUND, "Designation not found")
    return designation


@router.get("/designations", response_model=DesignationListResponse)
def list_designations(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str = Query(default="", max_length=255),
    level: Optional[int] = Query(default=None, ge=0),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
) -> DesignationListResponse:
    designations, total = _designation_store(request).list_designations(
        page=page, limit=limit, search=search, level=level, is_active=is_active
    )
    return DesignationListResponse(
        designations=[DesignationResponse.from_designation(d) for d in designations],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/designations/{designation_id}", response_model=DesignationEnvelope)
def get_designation(request: Request, designation_id: str) -> DesignationEnvelope:
    return DesignationEnvelope(designation=DesignationResponse.from_designation(_require_designation(request, designation_id)))


@router.post("/designations", response_model=DesignationEnvelope, status_code=201)
def create_designation(
    request: Request,
    body: DesignationCreate,
    actor: TokenClaims = Depends(manager_or_admin),
) -> DesignationEnvelope:
    store = _designation_store(request)
    if store.code_exists(body.code):
        raise ServiceError(ErrorKind.CONFLICT, "Designation code already exists")

    try:
        designation_id = store.create(
            Designation(
                title=body.title,
                code=body.code,
                description=body.description,
                level=body.level,
                metadata=body.metadata,
                created_by=actor.user_id,
            )
        )
    except IntegrityError:
        raise ServiceError(ErrorKind.CONFLICT, "Designation code already exists")

    designation = _require_designation(request, designation_id)
    record_audit(
        request,
        actor_id=actor.user_id,
        action=audit_models.CREATE,
        entity_type="designation",
        entity_id=designation_id,
        new=designation,
    )
    log_entity(
        "DESIGNATION",
        "CREATE_DESIGNATION",
        designation_id,
        created_by=actor.user_id,
        code=designation.code,
        **request_info(request).as_details(),
    )
    return DesignationEnvelope(designation=DesignationResponse.from_designation(designation))


@router.put("/designations/{designation_id}", response_model=DesignationEnvelope)
def update_designation(
    request: Request,
    designation_id: str,
    body: DesignationUpdate,
    actor: TokenClaims = Depends(manager_or_admin),
) -> DesignationEnvelope:
    store = _designation_store(request)
    current = _require_designation(request, designation_id)

    fields = body.model_dump(exclude_unset=True)
    for name in _NOT_NULL_FIELDS:
        if name in fields and fields[name] is None:
            del fields[name]
    if not fields:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "At least one field must be provided for update")
    if "code" in fields and store.code_exists(fields["code"], exclude_id=designation_id):
        raise ServiceError(ErrorKind.CONFLICT, "Designation code already exists")

    try:
        store.update(designation_id, actor.user_id, **fields)
    except IntegrityError:
        raise ServiceError(ErrorKind.CONFLICT, "Designation code already exists")

    updated = _require_designation(request, designation_id)
    record_audit(
        request,
        actor_id=actor.user_id,
        action=audit_models.UPDATE,
        entity_type="designation",
        entity_id=designation_id,
        old=current,
        new=updated,
    )
    log_entity(
        "DESIGNATION",
        "UPDATE_DESIGNATION",
        designation_id,
        updated_by=actor.user_id,
        fields=",".join(sorted(fields)),
        **request_info(request).as_details(),
    )
    return DesignationEnvelope(designation=DesignationResponse.from_designation(updated))


@router.delete("/designations/{designation_id}", response_model=MessageResponse)
def delete_designation(
    request: Request,
    designation_id: str,
    actor: TokenClaims = Depends(manager_or_admin),
) -> MessageResponse:
    current = _require_designation(request, designation_id)
    if request.app.state.user_store.count_in_designation(designation_id) > 0:
        raise ServiceError(ErrorKind.CONFLICT, "Cannot delete designation with assigned users")

    _designation_store(request).deactivate(designation_id, actor.user_id)
    record_audit(
        request,
        actor_id=actor.user_id,
        action=audit_models.DELETE,
        entity_type="designation",
        entity_id=designation_id,
        old=current,
    )
    log_entity(
        "DESIGNATION", "DELETE_DESIGNATION", designation_id, deleted_by=actor.user_id, **request_info(request).as_details()
    )
    return MessageResponse(message="Designation deleted successfully")
