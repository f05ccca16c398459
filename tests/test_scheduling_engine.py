"""
tests/test_scheduling_engine.py
Pure tests for the overlap predicate, the SQL overlap query, the
temporal classifier and the current-schedule tie-break.
"""

import itertools
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from services.schedule import engine
from shared.models.models import Location, Saint, Schedule
from shared.schemas.schemas import ScheduleCreateRequest, ScheduleUpdateRequest
from shared.utils.errors import NotFound, ScheduleConflict, ValidationError
from tests.conftest import make_schedule

TODAY = date(2025, 6, 15)


def d(month: int, day: int) -> date:
    return date(2025, month, day)


# ── Overlap Predicate ─────────────────────────────────────────

def test_shared_boundary_day_overlaps():
    """[Jan 10, Jan 15] and [Jan 15, Jan 20] share Jan 15."""
    assert engine.ranges_overlap(d(1, 10), d(1, 15), d(1, 15), d(1, 20))
    assert engine.ranges_overlap(d(1, 15), d(1, 20), d(1, 10), d(1, 15))


def test_adjacent_days_do_not_overlap():
    assert not engine.ranges_overlap(d(1, 10), d(1, 15), d(1, 16), d(1, 20))
    assert not engine.ranges_overlap(d(1, 16), d(1, 20), d(1, 10), d(1, 15))


def test_containment_overlaps_both_ways():
    assert engine.ranges_overlap(d(1, 1), d(1, 31), d(1, 10), d(1, 12))
    assert engine.ranges_overlap(d(1, 10), d(1, 12), d(1, 1), d(1, 31))


def test_single_day_ranges():
    assert engine.ranges_overlap(d(3, 3), d(3, 3), d(3, 3), d(3, 3))
    assert not engine.ranges_overlap(d(3, 3), d(3, 3), d(3, 4), d(3, 4))


def _three_disjuncts(c_start, c_end, e_start, e_end) -> bool:
    """Candidate starts inside, ends inside, or contains the existing range."""
    return (
        (e_start <= c_start and e_end >= c_start)
        or (e_start <= c_end and e_end >= c_end)
        or (e_start >= c_start and e_end <= c_end)
    )


def test_single_inequality_matches_three_disjunct_form():
    base = date(2025, 1, 1)
    points = [base + timedelta(days=i) for i in range(6)]
    ranges = [(a, b) for a, b in itertools.product(points, repeat=2) if a <= b]
    for (c_start, c_end), (e_start, e_end) in itertools.product(ranges, repeat=2):
        assert engine.ranges_overlap(c_start, c_end, e_start, e_end) == _three_disjuncts(
            c_start, c_end, e_start, e_end
        ), (c_start, c_end, e_start, e_end)


# ── Classifier ────────────────────────────────────────────────

@pytest.mark.parametrize(
    "start,end,current,upcoming",
    [
        (d(6, 1), d(6, 20), True, False),
        (d(7, 1), d(7, 5), False, True),
        (d(5, 1), d(5, 10), False, False),
        (d(6, 15), d(6, 15), True, False),
        (d(6, 10), d(6, 15), True, False),
        (d(6, 16), d(6, 30), False, True),
        (d(6, 1), d(6, 14), False, False),
    ],
)
def test_classification(start, end, current, upcoming):
    assert engine.is_current(start, end, TODAY) is current
    assert engine.is_upcoming(start, TODAY) is upcoming
    assert not (current and upcoming)


def test_validate_range_rejects_inversion():
    with pytest.raises(ValidationError):
        engine.validate_range(d(6, 20), d(6, 10))
    engine.validate_range(d(6, 10), d(6, 10))


def test_pick_current_prefers_latest_start_then_latest_created():
    t0 = datetime(2025, 1, 1, tzinfo=timezone.utc)
    early = Schedule(start_date=d(6, 1), end_date=d(6, 30), created_at=t0)
    late = Schedule(start_date=d(6, 10), end_date=d(6, 20), created_at=t0)
    late_newer = Schedule(start_date=d(6, 10), end_date=d(6, 25), created_at=t0 + timedelta(hours=1))
    past = Schedule(start_date=d(5, 1), end_date=d(5, 5), created_at=t0)

    assert engine.pick_current([early, late, past], TODAY) is late
    assert engine.pick_current([late_newer, early, late], TODAY) is late_newer
    assert engine.pick_current([past], TODAY) is None


# ── Overlap Query ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_find_overlaps_boundaries(db: AsyncSession, saint: Saint, location: Location):
    existing = await make_schedule(db, saint, location, d(1, 10), d(1, 15))

    touching = await engine.find_overlaps(db, saint.id, d(1, 15), d(1, 20))
    assert [c.id for c in touching] == [existing.id]

    assert await engine.find_overlaps(db, saint.id, d(1, 16), d(1, 20)) == []
    assert await engine.find_overlaps(db, saint.id, d(1, 1), d(1, 9)) == []


@pytest.mark.asyncio
async def test_find_overlaps_is_per_saint(
    db: AsyncSession, saint: Saint, other_saint: Saint, location: Location
):
    await make_schedule(db, saint, location, d(6, 1), d(6, 10))
    assert await engine.find_overlaps(db, other_saint.id, d(6, 1), d(6, 10)) == []


@pytest.mark.asyncio
async def test_find_overlaps_excludes_given_schedule(db: AsyncSession, saint: Saint, location: Location):
    own = await make_schedule(db, saint, location, d(6, 1), d(6, 10))
    assert await engine.find_overlaps(db, saint.id, d(6, 1), d(6, 10), exclude_schedule_id=own.id) == []


@pytest.mark.asyncio
async def test_find_overlaps_carries_denormalized_summaries(
    db: AsyncSession, saint: Saint, location: Location
):
    await make_schedule(db, saint, location, d(6, 1), d(6, 10))
    [conflict] = await engine.find_overlaps(db, saint.id, d(6, 5), d(6, 8))
    assert conflict.saint.name == saint.name
    assert conflict.saint.title == "Acharya"
    assert conflict.location.city == "Indore"
    assert conflict.location.country == "India"


# ── Guarded Mutations ─────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_validates_before_checking_conflicts(
    db: AsyncSession, saint: Saint, location: Location
):
    await make_schedule(db, saint, location, d(6, 1), d(6, 30))
    data = ScheduleCreateRequest(
        saint_id=saint.id, location_id=location.id, start_date=d(6, 20), end_date=d(6, 10)
    )
    with pytest.raises(ValidationError):
        await engine.create_schedule(db, data, actor_id=None)


@pytest.mark.asyncio
async def test_create_conflict_carries_colliding_schedules(
    db: AsyncSession, saint: Saint, location: Location
):
    existing = await make_schedule(db, saint, location, d(6, 1), d(6, 10))
    data = ScheduleCreateRequest(
        saint_id=saint.id, location_id=location.id, start_date=d(6, 5), end_date=d(6, 8)
    )
    with pytest.raises(ScheduleConflict) as exc_info:
        await engine.create_schedule(db, data, actor_id=None)
    assert [c.id for c in exc_info.value.conflicts] == [existing.id]


@pytest.mark.asyncio
async def test_create_requires_existing_saint_and_location(
    db: AsyncSession, saint: Saint, location: Location
):
    import uuid

    missing_saint = ScheduleCreateRequest(
        saint_id=uuid.uuid4(), location_id=location.id, start_date=d(6, 1), end_date=d(6, 2)
    )
    with pytest.raises(NotFound) as exc_info:
        await engine.create_schedule(db, missing_saint, actor_id=None)
    assert exc_info.value.code == "SAINT_NOT_FOUND"

    missing_location = ScheduleCreateRequest(
        saint_id=saint.id, location_id=uuid.uuid4(), start_date=d(6, 1), end_date=d(6, 2)
    )
    with pytest.raises(NotFound) as exc_info:
        await engine.create_schedule(db, missing_location, actor_id=None)
    assert exc_info.value.code == "LOCATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_update_rejects_effective_inversion(db: AsyncSession, saint: Saint, location: Location):
    """Moving only the end before the stored start is still an inverted range."""
    schedule = await make_schedule(db, saint, location, d(6, 10), d(6, 20))
    with pytest.raises(ValidationError):
        await engine.update_schedule(db, schedule.id, ScheduleUpdateRequest(end_date=d(6, 5)), actor_id=None)


@pytest.mark.asyncio
async def test_update_moving_to_other_saint_checks_that_saint(
    db: AsyncSession, saint: Saint, other_saint: Saint, location: Location
):
    mine = await make_schedule(db, saint, location, d(6, 1), d(6, 10))
    theirs = await make_schedule(db, other_saint, location, d(6, 5), d(6, 15))

    with pytest.raises(ScheduleConflict) as exc_info:
        await engine.update_schedule(
            db, mine.id, ScheduleUpdateRequest(saint_id=other_saint.id), actor_id=None
        )
    assert [c.id for c in exc_info.value.conflicts] == [theirs.id]


@pytest.mark.asyncio
async def test_delete_missing_schedule(db: AsyncSession):
    import uuid

    with pytest.raises(NotFound):
        await engine.delete_schedule(db, uuid.uuid4(), actor_id=None)


# ── Timelines ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_saint_timelines_current_and_capped_upcoming(
    db: AsyncSession, saint: Saint, other_saint: Saint, location: Location
):
    await make_schedule(db, saint, location, d(5, 1), d(5, 10))
    current = await make_schedule(db, saint, location, d(6, 10), d(6, 20))
    upcoming = []
    for i in range(7):
        start = d(7, 1) + timedelta(days=i * 3)
        upcoming.append(await make_schedule(db, saint, location, start, start + timedelta(days=1)))

    timelines = await engine.saint_timelines(db, [saint.id, other_saint.id], upcoming_limit=5, on=TODAY)

    got_current, got_upcoming = timelines[saint.id]
    assert got_current.id == current.id
    assert got_current.is_current
    assert [s.id for s in got_upcoming] == [s.id for s in upcoming[:5]]
    assert all(s.is_upcoming for s in got_upcoming)

    assert timelines[other_saint.id] == (None, [])
