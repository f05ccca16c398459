"""
tests/conftest.py
Shared fixtures: an in-memory SQLite database per test, the ASGI app
wired to it, an in-memory Redis stand-in, and seeded admins, saints
and a location.
"""

import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOCAL_STORAGE_PATH", os.path.join(tempfile.gettempdir(), "saint-directory-uploads"))

from datetime import date, timedelta
from typing import Optional
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.database import Base, get_db, use_immediate_transactions
from config.redis_client import get_redis
from main import app
from shared.models.models import AdminRole, AdminUser, Location, Saint, Schedule
from shared.utils.security import create_access_token, hash_password
from tasks import email_tasks


class FakeRedis:
    """The handful of redis.asyncio calls the API makes, backed by a dict."""

    def __init__(self):
        self.store = {}

    async def exists(self, key: str) -> int:
        return 1 if key in self.store else 0

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value

    async def incr(self, key: str) -> int:
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def expire(self, key: str, ttl: int) -> None:
        pass

    async def ping(self) -> bool:
        return True


# ── Database / App ────────────────────────────────────────────

@pytest_asyncio.fixture
async def db():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    use_immediate_transactions(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def client(db: AsyncSession, fake_redis: FakeRedis):
    # Requests share the test session. Route errors are raised before any
    # write is staged, so there is nothing to roll back between requests.
    async def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def celery_mocks(monkeypatch):
    """Never touch a broker from tests."""
    mocks = {
        "send_email": MagicMock(),
        "send_welcome_email": MagicMock(),
        "send_schedule_notification": MagicMock(),
    }
    for name, mock in mocks.items():
        monkeypatch.setattr(getattr(email_tasks, name), "delay", mock)
    return mocks


# ── Helpers ───────────────────────────────────────────────────

def auth_headers(user: AdminUser) -> dict:
    token, _, _ = create_access_token(str(user.id), user.role.value, user.username)
    return {"Authorization": f"Bearer {token}"}


async def make_schedule(
    db: AsyncSession,
    saint: Saint,
    location: Location,
    start: date,
    end: date,
    purpose: Optional[str] = None,
) -> Schedule:
    schedule = Schedule(
        saint_id=saint.id,
        location_id=location.id,
        start_date=start,
        end_date=end,
        purpose=purpose,
    )
    db.add(schedule)
    await db.commit()
    return schedule


def days(n: int) -> timedelta:
    return timedelta(days=n)


# ── Seed Data ─────────────────────────────────────────────────

@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> AdminUser:
    user = AdminUser(
        username="admin",
        email="admin@example.com",
        password_hash=hash_password("password123"),
        role=AdminRole.ADMIN,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def super_admin(db: AsyncSession) -> AdminUser:
    user = AdminUser(
        username="root",
        email="root@example.com",
        password_hash=hash_password("password123"),
        role=AdminRole.SUPER_ADMIN,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def saint(db: AsyncSession) -> Saint:
    s = Saint(name="Acharya Shantisagar", title="Acharya", spiritual_lineage="Digambar")
    db.add(s)
    await db.commit()
    return s


@pytest_asyncio.fixture
async def other_saint(db: AsyncSession) -> Saint:
    s = Saint(name="Muni Kshamasagar", title="Muni", spiritual_lineage="Digambar")
    db.add(s)
    await db.commit()
    return s


@pytest_asyncio.fixture
async def location(db: AsyncSession) -> Location:
    loc = Location(
        name="Shri Parshvanath Jain Mandir",
        address="12 Temple Road",
        city="Indore",
        state="Madhya Pradesh",
    )
    db.add(loc)
    await db.commit()
    return loc


@pytest_asyncio.fixture
async def other_location(db: AsyncSession) -> Location:
    loc = Location(
        name="Jain Sthanak",
        address="4 Market Street",
        city="Jaipur",
        state="Rajasthan",
    )
    db.add(loc)
    await db.commit()
    return loc
