"""
services/schedule/engine.py
Interval-overlap scheduling engine.

A saint's stays are closed date ranges [start_date, end_date]; two stays
of the same saint may never share a calendar day. Every mutation takes a
row lock on the affected saint(s) before the overlap query so that the
check and the write commit atomically with respect to other writers.
Updates and deletes lock the schedule row first, then its saint(s).
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import Select, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from shared.models.models import ActivityAction, Location, Saint, Schedule, utcnow
from shared.schemas.schemas import (
    LocationSummary,
    SaintSummary,
    ScheduleCreateRequest,
    ScheduleResponse,
    ScheduleUpdateRequest,
)
from shared.utils.audit import record_activity
from shared.utils.errors import NotFound, ScheduleConflict, ValidationError

logger = logging.getLogger(__name__)

ScheduleRow = Tuple[Schedule, Saint, Location]

MUTABLE_FIELDS = (
    "saint_id",
    "location_id",
    "start_date",
    "end_date",
    "purpose",
    "notes",
    "contact_person",
    "contact_phone",
)


# ── Calendar ──────────────────────────────────────────────────

def today() -> date:
    """Current calendar date in the configured timezone."""
    if settings.TIMEZONE.upper() == "UTC":
        return datetime.now(timezone.utc).date()
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()


def validate_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}"
        )


# ── Predicates ────────────────────────────────────────────────

def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Closed ranges share at least one day. Touching endpoints overlap."""
    return a_start <= b_end and b_start <= a_end


def is_current(start_date: date, end_date: date, on: date) -> bool:
    return start_date <= on <= end_date


def is_upcoming(start_date: date, on: date) -> bool:
    return start_date > on


def overlap_clause(start_date: date, end_date: date):
    """SQL form of ranges_overlap against the schedules table."""
    return and_(Schedule.start_date <= end_date, Schedule.end_date >= start_date)


def pick_current(schedules: Iterable[Schedule], on: date) -> Optional[Schedule]:
    """Latest start wins; a later created_at breaks ties."""
    current = [s for s in schedules if is_current(s.start_date, s.end_date, on)]
    if not current:
        return None
    return max(current, key=lambda s: (s.start_date, s.created_at))


# ── Serialization ─────────────────────────────────────────────

def to_response(
    schedule: Schedule,
    saint: Optional[Saint],
    location: Optional[Location],
    on: Optional[date] = None,
) -> ScheduleResponse:
    on = on or today()
    return ScheduleResponse(
        id=schedule.id,
        saint_id=schedule.saint_id,
        saint=SaintSummary.model_validate(saint) if saint else None,
        location_id=schedule.location_id,
        location=LocationSummary.model_validate(location) if location else None,
        start_date=schedule.start_date,
        end_date=schedule.end_date,
        purpose=schedule.purpose,
        notes=schedule.notes,
        contact_person=schedule.contact_person,
        contact_phone=schedule.contact_phone,
        created_by=schedule.created_by,
        created_at=schedule.created_at,
        updated_at=schedule.updated_at,
        is_current=is_current(schedule.start_date, schedule.end_date, on),
        is_upcoming=is_upcoming(schedule.start_date, on),
    )


def rows_to_responses(rows: Sequence, on: Optional[date] = None) -> List[ScheduleResponse]:
    on = on or today()
    return [to_response(s, saint, loc, on) for s, saint, loc in rows]


def snapshot(schedule: Schedule) -> dict:
    return {field: getattr(schedule, field) for field in MUTABLE_FIELDS}


# ── Queries ───────────────────────────────────────────────────

def denormalized() -> Select:
    """Schedule joined with its saint and location."""
    return (
        select(Schedule, Saint, Location)
        .join(Saint, Saint.id == Schedule.saint_id)
        .join(Location, Location.id == Schedule.location_id)
    )


def schedule_query(
    saint_id: Optional[uuid.UUID] = None,
    city: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Select:
    """Filtered listing, newest start first. date_from bounds the start, date_to the end."""
    query = denormalized()
    if saint_id:
        query = query.where(Schedule.saint_id == saint_id)
    if city and city.strip():
        query = query.where(func.lower(Location.city) == city.strip().lower())
    if date_from:
        query = query.where(Schedule.start_date >= date_from)
    if date_to:
        query = query.where(Schedule.end_date <= date_to)
    return query.order_by(Schedule.start_date.desc(), Schedule.id)


async def find_overlaps(
    db: AsyncSession,
    saint_id: uuid.UUID,
    start_date: date,
    end_date: date,
    exclude_schedule_id: Optional[uuid.UUID] = None,
) -> List[ScheduleResponse]:
    """Schedules of one saint that share a day with [start_date, end_date]."""
    query = denormalized().where(
        Schedule.saint_id == saint_id,
        overlap_clause(start_date, end_date),
    )
    if exclude_schedule_id is not None:
        query = query.where(Schedule.id != exclude_schedule_id)

    result = await db.execute(query.order_by(Schedule.start_date.asc(), Schedule.id))
    return rows_to_responses(result.all())


async def get_schedule(db: AsyncSession, schedule_id: uuid.UUID) -> ScheduleResponse:
    result = await db.execute(denormalized().where(Schedule.id == schedule_id))
    row = result.one_or_none()
    if not row:
        raise NotFound("Schedule not found", code="SCHEDULE_NOT_FOUND")
    return to_response(*row)


async def current_schedules(
    db: AsyncSession,
    city: Optional[str] = None,
    saint_id: Optional[uuid.UUID] = None,
    on: Optional[date] = None,
) -> List[ScheduleResponse]:
    on = on or today()
    query = denormalized().where(Schedule.start_date <= on, Schedule.end_date >= on)
    if city:
        query = query.where(func.lower(Location.city) == city.strip().lower())
    if saint_id:
        query = query.where(Schedule.saint_id == saint_id)

    result = await db.execute(query.order_by(Schedule.end_date.asc(), Schedule.start_date.asc()))
    return rows_to_responses(result.all(), on)


async def upcoming_schedules(
    db: AsyncSession,
    days_ahead: int = settings.UPCOMING_DEFAULT_DAYS,
    city: Optional[str] = None,
    saint_id: Optional[uuid.UUID] = None,
    on: Optional[date] = None,
) -> List[ScheduleResponse]:
    """Schedules starting in (today, today + days_ahead]."""
    if not 1 <= days_ahead <= settings.UPCOMING_MAX_DAYS:
        raise ValidationError(f"daysAhead must be between 1 and {settings.UPCOMING_MAX_DAYS}")

    on = on or today()
    horizon = on + timedelta(days=days_ahead)
    query = denormalized().where(Schedule.start_date > on, Schedule.start_date <= horizon)
    if city:
        query = query.where(func.lower(Location.city) == city.strip().lower())
    if saint_id:
        query = query.where(Schedule.saint_id == saint_id)

    result = await db.execute(query.order_by(Schedule.start_date.asc(), Schedule.id))
    return rows_to_responses(result.all(), on)


async def saint_timelines(
    db: AsyncSession,
    saint_ids: Sequence[uuid.UUID],
    upcoming_limit: int = settings.PROFILE_UPCOMING_LIMIT,
    on: Optional[date] = None,
) -> Dict[uuid.UUID, Tuple[Optional[ScheduleResponse], List[ScheduleResponse]]]:
    """
    Current schedule and the next few upcoming ones for each saint,
    fetched in a single query. Past schedules are never loaded.
    """
    on = on or today()
    timelines: Dict[uuid.UUID, Tuple[Optional[ScheduleResponse], List[ScheduleResponse]]] = {
        sid: (None, []) for sid in saint_ids
    }
    if not saint_ids:
        return timelines

    result = await db.execute(
        denormalized()
        .where(Schedule.saint_id.in_(saint_ids), Schedule.end_date >= on)
        .order_by(Schedule.start_date.asc(), Schedule.created_at.asc())
    )
    grouped: Dict[uuid.UUID, List[ScheduleRow]] = {}
    for row in result.all():
        grouped.setdefault(row[0].saint_id, []).append(tuple(row))

    for sid, rows in grouped.items():
        by_schedule = {row[0].id: row for row in rows}
        current = pick_current((row[0] for row in rows), on)
        upcoming = [row for row in rows if is_upcoming(row[0].start_date, on)][:upcoming_limit]
        timelines[sid] = (
            to_response(*by_schedule[current.id], on) if current else None,
            rows_to_responses(upcoming, on),
        )
    return timelines


# ── Locking ───────────────────────────────────────────────────

async def _lock_saints(db: AsyncSession, *saint_ids: uuid.UUID) -> Dict[uuid.UUID, Saint]:
    """
    SELECT ... FOR UPDATE on each saint row, in id order so two writers
    touching the same pair of saints cannot deadlock. Missing ids are
    simply absent from the result.
    """
    locked: Dict[uuid.UUID, Saint] = {}
    for sid in sorted(set(saint_ids), key=str):
        result = await db.execute(
            select(Saint)
            .where(Saint.id == sid)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        saint = result.scalar_one_or_none()
        if saint is not None:
            locked[sid] = saint
            logger.debug(f"Locked saint {sid} for schedule write")
    return locked


async def _lock_schedule(db: AsyncSession, schedule_id: uuid.UUID) -> Schedule:
    """
    SELECT ... FOR UPDATE on the schedule row, refreshing any copy already
    in the session. Taken before the saint locks, so a schedule's saint
    cannot change between reading it and locking that saint.
    """
    result = await db.execute(
        select(Schedule)
        .where(Schedule.id == schedule_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    schedule = result.scalar_one_or_none()
    if not schedule:
        raise NotFound("Schedule not found", code="SCHEDULE_NOT_FOUND")
    return schedule


async def _get_location(db: AsyncSession, location_id: uuid.UUID) -> Location:
    location = await db.get(Location, location_id)
    if not location:
        raise NotFound("Location not found", code="LOCATION_NOT_FOUND")
    return location


# ── Guarded Mutations ─────────────────────────────────────────

async def create_schedule(
    db: AsyncSession,
    data: ScheduleCreateRequest,
    actor_id: Optional[uuid.UUID],
) -> ScheduleResponse:
    """
    Insert a schedule unless it overlaps another stay of the same saint.
    Raises ValidationError, NotFound or ScheduleConflict; nothing is
    written in any of those cases.
    """
    validate_range(data.start_date, data.end_date)

    locked = await _lock_saints(db, data.saint_id)
    saint = locked.get(data.saint_id)
    if not saint:
        raise NotFound("Saint not found", code="SAINT_NOT_FOUND")
    location = await _get_location(db, data.location_id)

    conflicts = await find_overlaps(db, data.saint_id, data.start_date, data.end_date)
    if conflicts:
        logger.info(
            f"Rejected schedule for saint {data.saint_id} "
            f"[{data.start_date} .. {data.end_date}]: conflicts {[str(c.id) for c in conflicts]}"
        )
        raise ScheduleConflict(conflicts)

    now = utcnow()
    schedule = Schedule(
        saint_id=data.saint_id,
        location_id=data.location_id,
        start_date=data.start_date,
        end_date=data.end_date,
        purpose=data.purpose,
        notes=data.notes,
        contact_person=data.contact_person,
        contact_phone=data.contact_phone,
        created_by=actor_id,
        created_at=now,
        updated_at=now,
    )
    db.add(schedule)
    await db.flush()

    await record_activity(
        db, actor_id, ActivityAction.CREATE_SCHEDULE, "schedule", schedule.id,
        after={
            "saint_id": schedule.saint_id,
            "location_id": schedule.location_id,
            "start_date": schedule.start_date,
            "end_date": schedule.end_date,
            "purpose": schedule.purpose,
        },
    )
    logger.info(
        f"Schedule {schedule.id} created for saint {saint.id} "
        f"[{schedule.start_date} .. {schedule.end_date}]"
    )
    return to_response(schedule, saint, location)


async def update_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    data: ScheduleUpdateRequest,
    actor_id: Optional[uuid.UUID],
) -> ScheduleResponse:
    """
    Apply a partial update. The overlap check runs on the effective
    saint and dates after overlaying the change on the locked row,
    excluding the schedule itself. An explicit null clears a descriptive
    field; the schema rejects null for saint, location and dates.
    """
    changes = data.model_dump(exclude_unset=True)

    if "start_date" in changes and "end_date" in changes:
        validate_range(changes["start_date"], changes["end_date"])

    schedule = await _lock_schedule(db, schedule_id)

    saint_id = changes.get("saint_id", schedule.saint_id)
    start_date = changes.get("start_date", schedule.start_date)
    end_date = changes.get("end_date", schedule.end_date)
    validate_range(start_date, end_date)

    locked = await _lock_saints(db, schedule.saint_id, saint_id)
    saint = locked.get(saint_id)
    if not saint:
        raise NotFound("Saint not found", code="SAINT_NOT_FOUND")
    location = await _get_location(db, changes.get("location_id", schedule.location_id))

    conflicts = await find_overlaps(db, saint_id, start_date, end_date, exclude_schedule_id=schedule.id)
    if conflicts:
        logger.info(
            f"Rejected update of schedule {schedule.id} "
            f"[{start_date} .. {end_date}]: conflicts {[str(c.id) for c in conflicts]}"
        )
        raise ScheduleConflict(conflicts)

    before = snapshot(schedule)
    for field, value in changes.items():
        setattr(schedule, field, value)
    schedule.updated_at = utcnow()
    await db.flush()

    await record_activity(
        db, actor_id, ActivityAction.UPDATE_SCHEDULE, "schedule", schedule.id,
        before=before, after=snapshot(schedule),
    )
    logger.info(f"Schedule {schedule.id} updated: {sorted(changes)}")
    return to_response(schedule, saint, location)


async def delete_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    actor_id: Optional[uuid.UUID],
) -> None:
    schedule = await _lock_schedule(db, schedule_id)

    before = snapshot(schedule)
    await db.delete(schedule)
    await db.flush()

    await record_activity(
        db, actor_id, ActivityAction.DELETE_SCHEDULE, "schedule", schedule_id, before=before,
    )
    logger.info(f"Schedule {schedule_id} deleted")
