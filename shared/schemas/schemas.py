"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
Wire format is camelCase; Python attributes stay snake_case.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.models.models import AdminRole

T = TypeVar("T")


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PaginatedResponse(BaseSchema, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int
    pages: int


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is not None and not v.strip():
        return None
    return v


def sent_fields(data: BaseModel, required: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Fields present in a partial update. An explicit null clears a nullable
    column; for the `required` columns null (or a blank string) means
    "leave unchanged".
    """
    required = set(required)
    return {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field not in required
    }


# ── Auth ──────────────────────────────────────────────────────

class LoginRequest(BaseSchema):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=128)


class AdminUserResponse(BaseSchema):
    id: uuid.UUID
    username: str
    email: str
    role: AdminRole
    last_login: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None


class LoginResponse(BaseSchema):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: AdminUserResponse


class AdminUserCreateRequest(BaseSchema):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8, max_length=100)
    role: AdminRole = AdminRole.ADMIN
    permissions: Optional[Dict[str, Any]] = None
    is_active: bool = True


# ── Summaries (denormalized into schedules) ───────────────────

class SaintSummary(BaseSchema):
    id: uuid.UUID
    name: str
    title: Optional[str] = None
    is_active: bool


class LocationSummary(BaseSchema):
    id: uuid.UUID
    name: str
    address: str
    city: str
    state: Optional[str] = None
    country: str


# ── Schedule ──────────────────────────────────────────────────

class ScheduleResponse(BaseSchema):
    id: uuid.UUID
    saint_id: uuid.UUID
    saint: Optional[SaintSummary] = None
    location_id: uuid.UUID
    location: Optional[LocationSummary] = None
    start_date: date
    end_date: date
    purpose: Optional[str] = None
    notes: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    is_current: bool = False
    is_upcoming: bool = False


class ScheduleCreateRequest(BaseSchema):
    saint_id: uuid.UUID
    location_id: uuid.UUID
    start_date: date = Field(..., description="YYYY-MM-DD")
    end_date: date = Field(..., description="YYYY-MM-DD, inclusive")
    purpose: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=4000)
    contact_person: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=20)


class ScheduleUpdateRequest(BaseSchema):
    saint_id: Optional[uuid.UUID] = None
    location_id: Optional[uuid.UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    purpose: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=4000)
    contact_person: Optional[str] = Field(None, max_length=255)
    contact_phone: Optional[str] = Field(None, max_length=20)

    @field_validator("saint_id", "location_id", "start_date", "end_date")
    @classmethod
    def required_not_null(cls, v, info):
        # Runs only when the field is sent; omitting it keeps the stored value
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


# ── Saint ─────────────────────────────────────────────────────

class SaintResponse(BaseSchema):
    id: uuid.UUID
    name: str
    title: Optional[str] = None
    spiritual_lineage: Optional[str] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    current_schedule: Optional[ScheduleResponse] = None
    upcoming_schedules: List[ScheduleResponse] = []


class SaintCreateRequest(BaseSchema):
    name: str = Field(..., max_length=255)
    title: Optional[str] = Field(None, max_length=100)
    spiritual_lineage: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=10000)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Saint name is required")
        return v.strip()


class SaintUpdateRequest(BaseSchema):
    name: Optional[str] = Field(None, max_length=255)
    title: Optional[str] = Field(None, max_length=100)
    spiritual_lineage: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=10000)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    is_active: Optional[bool] = None

    _blank_name = field_validator("name")(_blank_to_none)


class PhotoUploadResponse(BaseSchema):
    photo_url: str


# ── Location ──────────────────────────────────────────────────

class LocationResponse(BaseSchema):
    id: uuid.UUID
    name: str
    address: str
    city: str
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None
    contact_phone: Optional[str] = None
    created_at: datetime
    schedules: List[ScheduleResponse] = []


class LocationCreateRequest(BaseSchema):
    name: str = Field(..., max_length=255)
    address: str
    city: str = Field(..., max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: str = Field(default="India", max_length=100)
    latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    contact_phone: Optional[str] = Field(None, max_length=20)

    @field_validator("name", "address", "city")
    @classmethod
    def required_not_blank(cls, v: str, info) -> str:
        if not v.strip():
            raise ValueError(f"{info.field_name} is required")
        return v.strip()


class LocationUpdateRequest(BaseSchema):
    name: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    contact_phone: Optional[str] = Field(None, max_length=20)

    _blank_required = field_validator("name", "address", "city", "country")(_blank_to_none)


# ── Search ────────────────────────────────────────────────────

class SearchSuggestionsResponse(BaseSchema):
    saints: List[SaintSummary]
    locations: List[LocationSummary]
    cities: List[str]


class AdvancedSearchResponse(BaseSchema):
    saints: List[SaintResponse]
    schedules: List[ScheduleResponse]
    locations: List[LocationResponse]
    total: int
    page: int
    page_size: int
    pages: int


# ── Admin ─────────────────────────────────────────────────────

class ActivityLogResponse(BaseSchema):
    id: uuid.UUID
    admin_user_id: Optional[uuid.UUID] = None
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    old_values: Optional[str] = None
    new_values: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    detail: str
    code: Optional[str] = None
    conflicts: Optional[List[ScheduleResponse]] = None
