"""
services/search/router.py
Public search: city list, typeahead suggestions and a combined
saints / schedules / locations search. Text matching is a
case-insensitive contains; there is no geo search.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.location.router import list_cities, location_query
from services.saint.router import saint_query, with_timelines
from services.schedule import engine
from shared.models.models import Location, Saint
from shared.schemas.schemas import (
    AdvancedSearchResponse,
    LocationResponse,
    LocationSummary,
    SaintSummary,
    SearchSuggestionsResponse,
)
from shared.utils.errors import ValidationError
from shared.utils.pagination import clamp_page_size, paginate, total_pages

router = APIRouter(prefix="/search", tags=["Search"])

SUGGESTION_LIMIT = 10


@router.get("/cities", response_model=List[str])
async def get_cities(query: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return await list_cities(db, query)


@router.get("/suggestions", response_model=SearchSuggestionsResponse)
async def get_suggestions(query: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """Up to 10 each of matching active saints, locations and cities."""
    if not query or not query.strip():
        raise ValidationError("Search query is required")
    term = query.strip().lower()

    saints = await db.execute(
        select(Saint)
        .where(Saint.is_active == True, func.lower(Saint.name).contains(term, autoescape=True))  # noqa: E712
        .order_by(Saint.name)
        .limit(SUGGESTION_LIMIT)
    )
    locations = await db.execute(
        select(Location)
        .where(func.lower(Location.name).contains(term, autoescape=True))
        .order_by(Location.name)
        .limit(SUGGESTION_LIMIT)
    )
    cities = await list_cities(db, term)

    return SearchSuggestionsResponse(
        saints=[SaintSummary.model_validate(s) for s in saints.scalars().all()],
        locations=[LocationSummary.model_validate(loc) for loc in locations.scalars().all()],
        cities=cities[:SUGGESTION_LIMIT],
    )


@router.get("/advanced", response_model=AdvancedSearchResponse)
async def advanced_search(
    query: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    current_only: bool = Query(False, alias="currentOnly"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    db: AsyncSession = Depends(get_db),
):
    """
    Active saints always; schedules when a city or date bound is given;
    locations when a city or state is given. Each section is paged
    independently with the same page / pageSize.
    """
    page_size = clamp_page_size(page_size)

    saint_rows, saint_total = await paginate(
        db, saint_query(search=query, is_active=True, city=city), page, page_size
    )
    saints = await with_timelines(db, [row[0] for row in saint_rows])

    schedules = []
    if date_from or date_to or (city and city.strip()):
        if current_only:
            schedules = await engine.current_schedules(db, city=city)
        else:
            rows, _ = await paginate(
                db, engine.schedule_query(city=city, date_from=date_from, date_to=date_to), page, page_size
            )
            schedules = engine.rows_to_responses(rows)

    locations = []
    if (city and city.strip()) or (state and state.strip()):
        rows, _ = await paginate(db, location_query(city=city, state=state), page, page_size)
        locations = [LocationResponse.model_validate(row[0]) for row in rows]

    total = saint_total + len(schedules) + len(locations)
    return AdvancedSearchResponse(
        saints=saints,
        schedules=schedules,
        locations=locations,
        total=total,
        page=page,
        page_size=page_size,
        pages=total_pages(total, page_size),
    )
