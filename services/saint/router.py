"""
services/saint/router.py
Saint directory: public browsing with current/upcoming stays, admin CRUD,
deactivate-not-delete, and photo upload.
"""

import logging
import os
from typing import List, Optional, Sequence
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.schedule import engine
from shared.middleware.auth import require_admin
from shared.models.models import ActivityAction, AdminUser, Location, Saint, Schedule, utcnow
from shared.schemas.schemas import (
    MessageResponse,
    PaginatedResponse,
    PhotoUploadResponse,
    SaintCreateRequest,
    SaintResponse,
    SaintUpdateRequest,
    sent_fields,
)
from shared.utils.audit import record_activity, request_meta
from shared.utils.errors import NotFound, ValidationError
from shared.utils.pagination import clamp_page_size, paginate, total_pages
from shared.utils.storage import ALLOWED_PHOTO_EXTENSIONS, save_saint_photo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/saints", tags=["Saints"])

SNAPSHOT_FIELDS = ("name", "title", "spiritual_lineage", "bio", "photo_url", "phone", "email", "is_active")
REQUIRED_FIELDS = ("name", "is_active")


# ── Helpers ───────────────────────────────────────────────────

async def _get_saint_or_404(saint_id: UUID, db: AsyncSession) -> Saint:
    saint = await db.get(Saint, saint_id)
    if not saint:
        raise NotFound("Saint not found", code="SAINT_NOT_FOUND")
    return saint


def _snapshot(saint: Saint) -> dict:
    return {field: getattr(saint, field) for field in SNAPSHOT_FIELDS}


def _currently_in_city(city: str):
    """EXISTS clause: the saint has a stay covering today in this city."""
    today = engine.today()
    return (
        select(Schedule.id)
        .join(Location, Location.id == Schedule.location_id)
        .where(
            Schedule.saint_id == Saint.id,
            func.lower(Location.city) == city.strip().lower(),
            Schedule.start_date <= today,
            Schedule.end_date >= today,
        )
        .exists()
    )


def saint_query(
    search: Optional[str] = None,
    is_active: Optional[bool] = True,
    city: Optional[str] = None,
):
    """Saints ordered by name. `search` matches name, title or lineage."""
    query = select(Saint)
    if search and search.strip():
        term = search.strip().lower()
        query = query.where(or_(
            func.lower(Saint.name).contains(term, autoescape=True),
            func.lower(Saint.title).contains(term, autoescape=True),
            func.lower(Saint.spiritual_lineage).contains(term, autoescape=True),
        ))
    if is_active is not None:
        query = query.where(Saint.is_active == is_active)
    if city and city.strip():
        query = query.where(_currently_in_city(city))
    return query.order_by(Saint.name, Saint.id)


async def with_timelines(db: AsyncSession, saints: Sequence[Saint]) -> List[SaintResponse]:
    """Attach currentSchedule and the next upcoming stays to each saint."""
    timelines = await engine.saint_timelines(db, [s.id for s in saints])
    responses = []
    for saint in saints:
        current, upcoming = timelines[saint.id]
        responses.append(
            SaintResponse.model_validate(saint).model_copy(
                update={"current_schedule": current, "upcoming_schedules": upcoming}
            )
        )
    return responses


# ── Public ────────────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[SaintResponse])
async def list_saints(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(True, alias="isActive"),
    city: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Saints ordered by name. `search` matches name, title or lineage;
    `city` keeps saints currently staying there.
    """
    page_size = clamp_page_size(page_size)
    query = saint_query(search=search, is_active=is_active, city=city)
    rows, total = await paginate(db, query, page, page_size)
    saints = [row[0] for row in rows]
    return PaginatedResponse[SaintResponse](
        items=await with_timelines(db, saints),
        total=total,
        page=page,
        page_size=page_size,
        pages=total_pages(total, page_size),
    )


@router.get("/city/{city}", response_model=List[SaintResponse])
async def get_saints_by_city(city: str, db: AsyncSession = Depends(get_db)):
    """Active saints whose current stay is in the given city."""
    result = await db.execute(
        select(Saint)
        .where(Saint.is_active == True, _currently_in_city(city))  # noqa: E712
        .order_by(Saint.name)
    )
    return await with_timelines(db, result.scalars().all())


@router.get("/{saint_id}", response_model=SaintResponse)
async def get_saint(saint_id: UUID, db: AsyncSession = Depends(get_db)):
    saint = await _get_saint_or_404(saint_id, db)
    return (await with_timelines(db, [saint]))[0]


# ── Admin ─────────────────────────────────────────────────────

@router.post("", response_model=SaintResponse, status_code=status.HTTP_201_CREATED)
async def create_saint(
    data: SaintCreateRequest,
    request: Request,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    saint = Saint(**data.model_dump(), is_active=True, created_at=now, updated_at=now)
    db.add(saint)
    await db.flush()

    await record_activity(
        db, current_user.id, ActivityAction.CREATE_SAINT, "saint", saint.id,
        after=_snapshot(saint), **request_meta(request),
    )
    await db.commit()
    logger.info(f"Saint {saint.id} created by {current_user.username}")
    return SaintResponse.model_validate(saint)


@router.put("/{saint_id}", response_model=SaintResponse)
async def update_saint(
    saint_id: UUID,
    data: SaintUpdateRequest,
    request: Request,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    saint = await _get_saint_or_404(saint_id, db)
    before = _snapshot(saint)

    for field, value in sent_fields(data, required=REQUIRED_FIELDS).items():
        setattr(saint, field, value)
    saint.updated_at = utcnow()

    await record_activity(
        db, current_user.id, ActivityAction.UPDATE_SAINT, "saint", saint.id,
        before=before, after=_snapshot(saint), **request_meta(request),
    )
    await db.commit()
    return (await with_timelines(db, [saint]))[0]


@router.delete("/{saint_id}", response_model=MessageResponse)
async def deactivate_saint(
    saint_id: UUID,
    request: Request,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Saints are never hard-deleted; their schedule history stays intact."""
    saint = await _get_saint_or_404(saint_id, db)
    was_active = saint.is_active
    saint.is_active = False
    saint.updated_at = utcnow()

    await record_activity(
        db, current_user.id, ActivityAction.DELETE_SAINT, "saint", saint.id,
        before={"is_active": was_active}, after={"is_active": False}, **request_meta(request),
    )
    await db.commit()
    logger.info(f"Saint {saint.id} deactivated by {current_user.username}")
    return MessageResponse(message="Saint deactivated successfully")


@router.post("/{saint_id}/photo", response_model=PhotoUploadResponse)
async def upload_saint_photo(
    saint_id: UUID,
    request: Request,
    photo: UploadFile = File(...),
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """jpg, jpeg, png or webp up to 5 MB. Replaces the current photo."""
    saint = await _get_saint_or_404(saint_id, db)

    extension = os.path.splitext(photo.filename or "")[1].lower()
    if extension not in ALLOWED_PHOTO_EXTENSIONS:
        raise ValidationError(
            f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_PHOTO_EXTENSIONS))}"
        )
    content = await photo.read()
    if not content:
        raise ValidationError("No file uploaded")
    if len(content) > settings.MAX_PHOTO_SIZE_BYTES:
        raise ValidationError(f"File size must be less than {settings.MAX_PHOTO_SIZE_BYTES // (1024 * 1024)}MB")

    url = await save_saint_photo(saint.id, extension, content, photo.content_type)
    old_url = saint.photo_url
    saint.photo_url = url
    saint.updated_at = utcnow()

    await record_activity(
        db, current_user.id, ActivityAction.UPDATE_SAINT_PHOTO, "saint", saint.id,
        before={"photo_url": old_url}, after={"photo_url": url}, **request_meta(request),
    )
    await db.commit()
    return PhotoUploadResponse(photo_url=url)
