"""
API request and response models for Saiqa REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
org/models.py, which own the internal domain representation. Route handlers
map between the two with the from_* classmethods below.

Wire format: JSON keys are camelCase (firstName, requiresPasswordChange).
CamelModel generates the aliases; populate_by_name lets tests and route code
build models with snake_case keyword arguments. FastAPI dumps response models
by alias, and routes that build a JSONResponse by hand call
model_dump(by_alias=True).

UserResponse has no password_hash field, so a hash can never be serialized.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from org.models import Designation, Unit

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
ROLE_PATTERN = r"^(admin|manager|user)$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _UpdateModel(CamelModel):
    """Partial-update body: at least one field must be present.

    Presence is what counts, not truthiness -- {"parentUnitId": null} is a
    valid update that clears the parent.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    @model_validator(mode="after")
    def require_one_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(CamelModel):
    """Request body for POST /api/auth/login."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class ChangePasswordRequest(CamelModel):
    """Request body for POST /api/auth/change-password.

    The 8-character minimum on new_password is enforced by SessionService so
    the error message matches the admin reset flow.
    """

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class ResetPasswordRequest(CamelModel):
    """Request body for POST /api/users/{id}/reset-password."""

    new_password: str = Field(min_length=1, max_length=128)


class UserResponse(CamelModel):
    """Public shape of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    unit_id: Optional[str] = None
    designation_id: Optional[str] = None
    is_active: bool
    force_password_change: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    unit_name: Optional[str] = None
    designation_title: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            unit_id=user.unit_id,
            designation_id=user.designation_id,
            is_active=user.is_active,
            force_password_change=user.force_password_change,
            metadata=user.metadata,
            created_at=user.created_at,
            updated_at=user.updated_at,
            created_by=user.created_by,
            updated_by=user.updated_by,
            unit_name=user.unit_name,
            designation_title=user.designation_title,
        )


class SessionResponse(CamelModel):
    """Body of a successful login or refresh."""

    user: UserResponse
    requires_password_change: bool


class MeResponse(CamelModel):
    """Body of GET /api/auth/me. expires_at is the access token expiry in ms since epoch."""

    user: UserResponse
    expires_at: Optional[int] = None


class MessageResponse(CamelModel):
    message: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(CamelModel):
    """Request body for POST /api/users.

    password is optional: when omitted a random one is generated and returned
    once in UserCreatedResponse.generated_password.
    """

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: str = Field(pattern=ROLE_PATTERN)
    unit_id: Optional[str] = None
    designation_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UserUpdate(_UpdateModel):
    """Request body for PUT /api/users/{id}. Email and password are not updatable here."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[str] = Field(default=None, pattern=ROLE_PATTERN)
    unit_id: Optional[str] = None
    designation_id: Optional[str] = None
    is_active: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class UserCreatedResponse(CamelModel):
    user: UserResponse
    generated_password: Optional[str] = None


class UserEnvelope(CamelModel):
    user: UserResponse


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=-(-total // limit))


class UserListResponse(CamelModel):
    users: list[UserResponse]
    pagination: Pagination


class PreferencesResponse(CamelModel):
    preferences: dict[str, Any]


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class UnitCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    parent_unit_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UnitUpdate(_UpdateModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    parent_unit_id: Optional[str] = None
    is_active: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class UnitResponse(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    code: str
    description: Optional[str] = None
    parent_unit_id: Optional[str] = None
    parent_unit_name: Optional[str] = None
    is_active: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @classmethod
    def from_unit(cls, unit: Unit) -> "UnitResponse":
        return cls(
            id=unit.id,
            name=unit.name,
            code=unit.code,
            description=unit.description,
            parent_unit_id=unit.parent_unit_id,
            parent_unit_name=unit.parent_unit_name,
            is_active=unit.is_active,
            metadata=unit.metadata,
            created_at=unit.created_at,
            updated_at=unit.updated_at,
            created_by=unit.created_by,
            updated_by=unit.updated_by,
        )


class UnitEnvelope(CamelModel):
    unit: UnitResponse


class UnitListResponse(CamelModel):
    units: list[UnitResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Designations
# ---------------------------------------------------------------------------


class DesignationCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    level: Optional[int] = Field(default=None, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class DesignationUpdate(_UpdateModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    level: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class DesignationResponse(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    code: str
    description: Optional[str] = None
    level: Optional[int] = None
    is_active: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @classmethod
    def from_designation(cls, designation: Designation) -> "DesignationResponse":
        return cls(
            id=designation.id,
            title=designation.title,
            code=designation.code,
            description=designation.description,
            level=designation.level,
            is_active=designation.is_active,
            metadata=designation.metadata,
            created_at=designation.created_at,
            updated_at=designation.updated_at,
            created_by=designation.created_by,
            updated_by=designation.updated_by,
        )


class DesignationEnvelope(CamelModel):
    designation: DesignationResponse


class DesignationListResponse(CamelModel):
    designations: list[DesignationResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(CamelModel):
    """Response body for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    timestamp: str
