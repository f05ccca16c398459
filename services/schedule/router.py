"""
services/schedule/router.py
Schedule endpoints. Reads are public; mutations and the overlap probe
require an admin token. All rules live in services/schedule/engine.py.
"""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.schedule import engine
from shared.middleware.auth import require_admin
from shared.models.models import AdminUser, Schedule
from shared.schemas.schemas import (
    MessageResponse,
    PaginatedResponse,
    ScheduleCreateRequest,
    ScheduleResponse,
    ScheduleUpdateRequest,
)
from shared.utils.pagination import clamp_page_size, paginate, total_pages
from tasks.email_tasks import send_schedule_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])


# ── Helpers ───────────────────────────────────────────────────

def _notify(schedule: ScheduleResponse) -> None:
    recipients = settings.schedule_notify_list
    if not recipients:
        return
    try:
        send_schedule_notification.delay(recipients, jsonable_encoder(schedule, by_alias=True))
    except Exception as e:
        # The write is already committed; the email is best effort
        logger.warning(f"Could not queue schedule notification for {schedule.id}: {e}")


# ── Public Reads ──────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[ScheduleResponse])
async def list_schedules(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    saint_id: Optional[UUID] = Query(None, alias="saintId"),
    city: Optional[str] = None,
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    db: AsyncSession = Depends(get_db),
):
    """All schedules, newest start first."""
    page_size = clamp_page_size(page_size)
    query = engine.schedule_query(saint_id, city, date_from, date_to)
    rows, total = await paginate(db, query, page, page_size)
    return PaginatedResponse[ScheduleResponse](
        items=engine.rows_to_responses(rows),
        total=total,
        page=page,
        page_size=page_size,
        pages=total_pages(total, page_size),
    )


@router.get("/current", response_model=List[ScheduleResponse])
async def get_current_schedules(
    city: Optional[str] = None,
    saint_id: Optional[UUID] = Query(None, alias="saintId"),
    db: AsyncSession = Depends(get_db),
):
    """Schedules whose range contains today, soonest ending first."""
    return await engine.current_schedules(db, city=city, saint_id=saint_id)


@router.get("/upcoming", response_model=List[ScheduleResponse])
async def get_upcoming_schedules(
    city: Optional[str] = None,
    saint_id: Optional[UUID] = Query(None, alias="saintId"),
    days_ahead: int = Query(settings.UPCOMING_DEFAULT_DAYS, alias="daysAhead"),
    db: AsyncSession = Depends(get_db),
):
    """Schedules starting after today and within daysAhead days (1 to 365)."""
    return await engine.upcoming_schedules(db, days_ahead=days_ahead, city=city, saint_id=saint_id)


@router.get("/overlap", response_model=List[ScheduleResponse])
async def check_overlap(
    saint_id: UUID = Query(..., alias="saintId"),
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    exclude_schedule_id: Optional[UUID] = Query(None, alias="excludeScheduleId"),
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Read-only conflict probe for the admin form. An empty list means the
    range is free; conflicts are data here, not an error.
    """
    engine.validate_range(start_date, end_date)
    return await engine.find_overlaps(db, saint_id, start_date, end_date, exclude_schedule_id)


@router.get("/saint/{saint_id}", response_model=List[ScheduleResponse])
async def get_schedules_by_saint(saint_id: UUID, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        engine.denormalized()
        .where(Schedule.saint_id == saint_id)
        .order_by(Schedule.start_date.desc())
    )
    return engine.rows_to_responses(result.all())


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(schedule_id: UUID, db: AsyncSession = Depends(get_db)):
    return await engine.get_schedule(db, schedule_id)


# ── Admin Mutations ───────────────────────────────────────────

@router.post("", response_model=ScheduleResponse)
async def create_schedule(
    data: ScheduleCreateRequest,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a stay. Rejected with 400 VALIDATION_ERROR when endDate is
    before startDate and 400 SCHEDULE_CONFLICT when the saint already
    has a stay sharing any day with the range.
    """
    schedule = await engine.create_schedule(db, data, actor_id=current_user.id)
    await db.commit()
    _notify(schedule)
    return schedule


@router.put("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: UUID,
    data: ScheduleUpdateRequest,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    schedule = await engine.update_schedule(db, schedule_id, data, actor_id=current_user.id)
    await db.commit()
    _notify(schedule)
    return schedule


@router.delete("/{schedule_id}", response_model=MessageResponse)
async def delete_schedule(
    schedule_id: UUID,
    current_user: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await engine.delete_schedule(db, schedule_id, actor_id=current_user.id)
    await db.commit()
    return MessageResponse(message="Schedule deleted successfully")
