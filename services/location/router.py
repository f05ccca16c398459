"""
services/location/router.py
Temples and centers that host stays. A location with schedules cannot
be deleted.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.schedule import engine
from shared.middleware.auth import require_admin
from shared.models.models import ActivityAction, AdminUser, Location, Schedule, utcnow
from shared.schemas.schemas import (
    LocationCreateRequest,
    LocationResponse,
    LocationUpdateRequest,
    MessageResponse,
    PaginatedResponse,
    sent_fields,
)
from shared.utils.audit import record_activity, request_meta
from shared.utils.errors import NotFound, ReferenceConflict
from shared.utils.pagination import clamp_page_size, paginate, total_pages

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/locations", tags=["Locations"])

SNAPSHOT_FIELDS = (
    "name", "address", "city", "state", "postal_code", "country",
    "latitude", "longitude", "contact_phone",
)
REQUIRED_FIELDS = ("name", "address", "city", "country")
MAX_CITIES = 50


# ── Helpers ───────────────────────────────────────────────────

async def _get_location_or_404(location_id: UUID, db: AsyncSession) -> Location:
    location = await db.get(Location, location_id)
    if not location:
        raise NotFound("Location not found", code="LOCATION_NOT_FOUND")
    return location


def _snapshot(location: Location) -> dict:
    return {field: getattr(location, field) for field in SNAPSHOT_FIELDS}


async def list_cities(db: AsyncSession, query: Optional[str] = None) -> List[str]:
    """Distinct cities, alphabetical, capped at 50."""
    stmt = select(Location.city).distinct()
    if query and query.strip():
        stmt = stmt.where(func.lower(Location.city).contains(query.strip().lower(), autoescape=True))
    result = await db.execute(stmt.order_by(Location.city).limit(MAX_CITIES))
    return list(result.scalars().all())


def location_query(
    search: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
):
    """Locations ordered by city then name. City and state match case-insensitively."""
    query = select(Location)
    if search and search.strip():
        term = search.strip().lower()
        query = query.where(or_(
            func.lower(Location.name).contains(term, autoescape=True),
            func.lower(Location.address).contains(term, autoescape=True),
            func.lower(Location.city).contains(term, autoescape=True),
        ))
    if city and city.strip():
        query = query.where(func.lower(Location.city) == city.strip().lower())
    if state and state.strip():
        query = query.where(func.lower(Location.state) == state.strip().lower())
    return query.order_by(Location.city, Location.name, Location.id)


async def _with_schedules(db: AsyncSession, location: Location) -> LocationResponse:
    result = await db.execute(
        engine.denormalized()
        .where(Schedule.location_id == location.id)
        .order_by(Schedule.start_date.desc())
    )
    return LocationResponse.model_validate(location).model_copy(
        update={"schedules": engine.rows_to_responses(result.all())}
    )


# ── Public ────────────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[LocationResponse])
async def list_locations(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    search: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    page_size = clamp_page_size(page_size)
    rows, total = await paginate(db, location_query(search, city, state), page, page_size)
    return PaginatedResponse[LocationResponse](
        items=[LocationResponse.model_validate(row[0]) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=total_pages(total, page_size),
    )


@router.get("/cities", response_model=List[str])
async def get_cities(query: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return await list_cities(db, query)


@router.get("/city/{city}", response_model=List[LocationResponse])
async def get_locations_by_city(city: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Location)
        .where(func.lower(Location.city) == city.strip().lower())
        .order_by(Location.name)
    )
    return [LocationResponse.model_validate(loc) for loc in result.scalars().all()]


@router.get("/{location_id}", response_model=LocationResponse)
async def get_location(location_id: UUID, db: AsyncSession = Depends(get_db)):
    location = await _get_location_or_404(location_id, db)
    return await _with_schedules(db, location)


# ── Admin ─────────────────────────────────────────────────────

@router.post("", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
async def create_location(
    data: LocationCreateRequest,
    request: Request,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    location = Location(**data.model_dump(), created_at=utcnow())
    db.add(location)
    await db.flush()

    await record_activity(
        db, current_user.id, ActivityAction.CREATE_LOCATION, "location", location.id,
        after=_snapshot(location), **request_meta(request),
    )
    await db.commit()
    logger.info(f"Location {location.id} ({location.city}) created by {current_user.username}")
    return LocationResponse.model_validate(location)


@router.put("/{location_id}", response_model=LocationResponse)
async def update_location(
    location_id: UUID,
    data: LocationUpdateRequest,
    request: Request,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    location = await _get_location_or_404(location_id, db)
    before = _snapshot(location)

    for field, value in sent_fields(data, required=REQUIRED_FIELDS).items():
        setattr(location, field, value)

    await record_activity(
        db, current_user.id, ActivityAction.UPDATE_LOCATION, "location", location.id,
        before=before, after=_snapshot(location), **request_meta(request),
    )
    await db.commit()
    return await _with_schedules(db, location)


@router.delete("/{location_id}", response_model=MessageResponse)
async def delete_location(
    location_id: UUID,
    request: Request,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    location = await _get_location_or_404(location_id, db)

    in_use = await db.scalar(
        select(func.count(Schedule.id)).where(Schedule.location_id == location.id)
    )
    if in_use:
        raise ReferenceConflict(
            f"Location has {in_use} schedule(s) and cannot be deleted",
            code="LOCATION_HAS_SCHEDULES",
        )

    before = _snapshot(location)
    await db.delete(location)
    await record_activity(
        db, current_user.id, ActivityAction.DELETE_LOCATION, "location", location_id,
        before=before, **request_meta(request),
    )
    await db.commit()
    logger.info(f"Location {location_id} deleted by {current_user.username}")
    return MessageResponse(message="Location deleted successfully")
