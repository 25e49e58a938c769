"""
api/routes/units.py -- Organizational unit REST endpoints.

Routes:
  GET    /api/units        -- paginated list (any role)
  GET    /api/units/{id}   -- one unit with its parent's name (any role)
  POST   /api/units        -- create (manager or admin)
  PUT    /api/units/{id}   -- partial update (manager or admin)
  DELETE /api/units/{id}   -- soft delete (manager or admin)

Integrity rules enforced here:
  - code is unique (400 "Unit code already exists")
  - parent_unit_id must reference an existing unit, and never the unit itself
  - a unit with active child units or assigned users cannot be deleted
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import MessageResponse, Pagination, UnitCreate, UnitEnvelope, UnitListResponse, UnitResponse, UnitUpdate
from api.request_context import record_audit, request_info
from audit import models as audit_models
from auth.dependencies import authenticate, manager_or_admin
from auth.models import TokenClaims
from core.activity import log_entity
from core.errors import ErrorKind, ServiceError
from org.models import Unit
from org.store import UnitStore

router = APIRouter(dependencies=[Depends(authenticate)])

_NOT_NULL_FIELDS = ("name", "code", "is_active", "metadata")


def _unit_store(request: Request) -> UnitStore:
    return request.app.state.unit_store


def _require_unit(request: Request, unit_id: str) -> Unit:
    unit = _unit_store(request).get(unit_id)
    if unit is None:
        raise ServiceError(ErrorKind.NOT_FOUND, "Unit not found")
    return unit


@router.get("/units", response_model=UnitListResponse)
def list_units(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str = Query(default="", max_length=255),
    parent_unit_id: str = Query(default="", alias="parentUnitId"),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
) -> UnitListResponse:
    units, total = _unit_store(request).list_units(
        page=page, limit=limit, search=search, parent_unit_id=parent_unit_id, is_active=is_active
    )
    return UnitListResponse(units=[UnitResponse.from_unit(u) for u in units], pagination=Pagination.build(page, limit, total))


@router.get("/units/{unit_id}", response_model=UnitEnvelope)
def get_unit(request: Request, unit_id: str) -> UnitEnvelope:
    return UnitEnvelope(unit=UnitResponse.from_unit(_require_unit(request, unit_id)))


@router.post("/units", response_model=UnitEnvelope, status_code=201)
def create_unit(request: Request, body: UnitCreate, actor: TokenClaims = Depends(manager_or_admin)) -> UnitEnvelope:
    store = _unit_store(request)
    if store.code_exists(body.code):
        raise ServiceError(ErrorKind.CONFLICT, "Unit code already exists")
    if body.parent_unit_id and store.get(body.parent_unit_id) is None:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "Parent unit not found")

    try:
        unit_id = store.create(
            Unit(
                name=body.name,
                code=body.code,
                description=body.description,
                parent_unit_id=body.parent_unit_id,
                metadata=body.metadata,
                created_by=actor.user_id,
            )
        )
    except IntegrityError:
        raise ServiceError(ErrorKind.CONFLICT, "Unit code already exists")

    unit = _require_unit(request, unit_id)
    record_audit(
        request, actor_id=actor.user_id, action=audit_models.CREATE, entity_type="unit", entity_id=unit_id, new=unit
    )
    log_entity("UNIT", "CREATE_UNIT", unit_id, created_by=actor.user_id, code=unit.code, **request_info(request).as_details())
    return UnitEnvelope(unit=UnitResponse.from_unit(unit))


@router.put("/units/{unit_id}", response_model=UnitEnvelope)
def update_unit(
    request: Request,
    unit_id: str,
    body: UnitUpdate,
    actor: TokenClaims = Depends(manager_or_admin),
) -> UnitEnvelope:
    store = _unit_store(request)
    current = _require_unit(request, unit_id)

    fields = body.model_dump(exclude_unset=True)
    for name in _NOT_NULL_FIELDS:
        if name in fields and fields[name] is None:
            del fields[name]
    if not fields:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "At least one field must be provided for update")
    if "code" in fields and store.code_exists(fields["code"], exclude_id=unit_id):
        raise ServiceError(ErrorKind.CONFLICT, "Unit code already exists")
    parent_id = fields.get("parent_unit_id")
    if parent_id:
        if parent_id == unit_id:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Unit cannot be its own parent")
        if store.get(parent_id) is None:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Parent unit not found")

    try:
        store.update(unit_id, actor.user_id, **fields)
    except IntegrityError:
        raise ServiceError(ErrorKind.CONFLICT, "Unit code already exists")

    updated = _require_unit(request, unit_id)
    record_audit(
        request,
        actor_id=actor.user_id,
        action=audit_models.UPDATE,
        entity_type="unit",
        entity_id=unit_id,
        old=current,
        new=updated,
    )
    log_entity(
        "UNIT",
        "UPDATE_UNIT",
        unit_id,
        updated_by=actor.user_id,
        fields=",".join(sorted(fields)),
        **request_info(request).as_details(),
    )
    return UnitEnvelope(unit=UnitResponse.from_unit(updated))


@router.delete("/units/{unit_id}", response_model=MessageResponse)
def delete_unit(request: Request, unit_id: str, actor: TokenClaims = Depends(manager_or_admin)) -> MessageResponse:
    store = _unit_store(request)
    current = _require_unit(request, unit_id)
    if store.count_children(unit_id) > 0:
        raise ServiceError(ErrorKind.CONFLICT, "Cannot delete unit with child units")
    if request.app.state.user_store.count_in_unit(unit_id) > 0:
        raise ServiceError(ErrorKind.CONFLICT, "Cannot delete unit with assigned users")

    store.deactivate(unit_id, actor.user_id)
    record_audit(
        request, actor_id=actor.user_id, action=audit_models.DELETE, entity_type="unit", entity_id=unit_id, old=current
    )
    log_entity("UNIT", "DELETE_UNIT", unit_id, deleted_by=actor.user_id, **request_info(request).as_details())
    return MessageResponse(message="Unit deleted successfully")
