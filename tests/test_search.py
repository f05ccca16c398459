"""
tests/test_search.py
Tests for /search: cities, typeahead suggestions and the combined search.
"""

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from services.schedule.engine import today
from shared.models.models import Location, Saint
from tests.conftest import days, make_schedule


@pytest.mark.asyncio
async def test_search_cities(client: AsyncClient, location: Location, other_location: Location):
    response = await client.get("/search/cities")
    assert response.status_code == 200
    assert response.json() == ["Indore", "Jaipur"]


@pytest.mark.asyncio
async def test_suggestions(
    client: AsyncClient, saint: Saint, other_saint: Saint, location: Location, other_location: Location
):
    response = await client.get("/search/suggestions", params={"query": "sagar"})
    assert response.status_code == 200
    data = response.json()
    assert [s["name"] for s in data["saints"]] == ["Acharya Shantisagar", "Muni Kshamasagar"]
    assert data["locations"] == []
    assert data["cities"] == []

    response = await client.get("/search/suggestions", params={"query": "jai"})
    data = response.json()
    assert data["saints"] == []
    assert [loc["name"] for loc in data["locations"]] == ["Jain Sthanak", "Shri Parshvanath Jain Mandir"]
    assert data["cities"] == ["Jaipur"]


@pytest.mark.asyncio
async def test_suggestions_skip_inactive_saints(client: AsyncClient, saint: Saint, db: AsyncSession):
    saint.is_active = False
    await db.commit()

    response = await client.get("/search/suggestions", params={"query": "shanti"})
    assert response.json()["saints"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{}, {"query": "   "}])
async def test_suggestions_require_query(client: AsyncClient, params: dict):
    response = await client.get("/search/suggestions", params=params)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_advanced_saints_only_without_city_or_dates(
    client: AsyncClient, saint: Saint, other_saint: Saint, location: Location, db: AsyncSession
):
    await make_schedule(db, saint, location, date(2025, 1, 1), date(2025, 1, 5))

    response = await client.get("/search/advanced", params={"query": "muni"})
    assert response.status_code == 200
    data = response.json()
    assert [s["id"] for s in data["saints"]] == [str(other_saint.id)]
    assert data["schedules"] == []
    assert data["locations"] == []
    assert data["total"] == 1


@pytest.mark.asyncio
async def test_advanced_by_city(
    client: AsyncClient,
    saint: Saint,
    other_saint: Saint,
    location: Location,
    other_location: Location,
    db: AsyncSession,
):
    t = today()
    here = await make_schedule(db, saint, location, t - days(1), t + days(3))
    await make_schedule(db, other_saint, other_location, t - days(1), t + days(3))

    response = await client.get("/search/advanced", params={"city": "Indore"})
    data = response.json()
    assert [s["id"] for s in data["saints"]] == [str(saint.id)]
    assert data["saints"][0]["currentSchedule"]["id"] == str(here.id)
    assert [s["id"] for s in data["schedules"]] == [str(here.id)]
    assert [loc["id"] for loc in data["locations"]] == [str(location.id)]
    assert data["total"] == 3


@pytest.mark.asyncio
async def test_advanced_date_range_and_current_only(
    client: AsyncClient, saint: Saint, location: Location, db: AsyncSession
):
    t = today()
    current = await make_schedule(db, saint, location, t - days(1), t + days(1))
    later = await make_schedule(db, saint, location, t + days(20), t + days(25))

    response = await client.get(
        "/search/advanced", params={"dateFrom": (t + days(10)).isoformat()}
    )
    assert [s["id"] for s in response.json()["schedules"]] == [str(later.id)]

    response = await client.get(
        "/search/advanced", params={"dateFrom": (t - days(5)).isoformat(), "currentOnly": "true"}
    )
    assert [s["id"] for s in response.json()["schedules"]] == [str(current.id)]


@pytest.mark.asyncio
async def test_advanced_by_state(client: AsyncClient, location: Location, other_location: Location):
    response = await client.get("/search/advanced", params={"state": "Rajasthan"})
    data = response.json()
    assert [loc["id"] for loc in data["locations"]] == [str(other_location.id)]
    assert data["schedules"] == []
