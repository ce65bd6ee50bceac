"""
Pytest fixtures for test database, client, and authentication.

Each test gets freshly created tables on a throwaway database:
TEST_DATABASE_URL when set (e.g. a PostgreSQL test database), otherwise a
temporary SQLite file. Every request and every helper uses its own short
session, the same way the app does, so no test holds a lock across calls.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SEAT_LIST_MODE", "auto")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.main import app
from app.api.dependencies import get_capabilities
from app.core.security import create_access_token, hash_password
from app.db.base import Base
from app.db.capabilities import SchemaCapabilities
from app.db.session import build_engine, build_sessionmaker, get_db, session_scope
from app.models.event import Event
from app.models.user import User

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

SEAT_LIST = SchemaCapabilities(seat_list=True)
LEGACY = SchemaCapabilities(seat_list=False)

TEST_PASSWORD = "testpassword123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables, yield the engine, then drop tables for isolation."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    test_engine = build_engine(url)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture
async def legacy_engine(engine: AsyncEngine) -> AsyncEngine:
    """Same database, but bookings has the pre-002 shape (no seats column)."""
    async with engine.begin() as conn:
        await conn.exec_driver_sql("ALTER TABLE bookings DROP COLUMN seats")
    return engine


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


def _client_for(session_factory, capabilities: SchemaCapabilities):
    async def override_get_db():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_capabilities] = lambda: capabilities
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database, per-seat schema."""
    async with _client_for(session_factory, SEAT_LIST) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def legacy_client(legacy_engine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to a legacy (no bookings.seats) database."""
    async with _client_for(build_sessionmaker(legacy_engine), LEGACY) as ac:
        yield ac
    app.dependency_overrides.clear()


# --- data helpers -----------------------------------------------------------


async def add_user(session_factory, email: str, name: str = "Test User", role: str = "user") -> int:
    async with session_factory() as session:
        user = User(
            name=name,
            email=email,
            hashed_password=TEST_PASSWORD_HASH,
            role=role,
        )
        session.add(user)
        await session.commit()
        return user.id


async def add_event(
    session_factory,
    total_seats: int = 50,
    available_seats: int | None = None,
    status: str = "upcoming",
    title: str = "Test Concert",
) -> int:
    async with session_factory() as session:
        event = Event(
            title=title,
            description="A test event",
            location="Test Venue",
            date=datetime.now(timezone.utc) + timedelta(days=30),
            total_seats=total_seats,
            available_seats=total_seats if available_seats is None else available_seats,
            price=50,
            status=status,
        )
        session.add(event)
        await session.commit()
        return event.id


async def available_seats(session_factory, event_id: int) -> int:
    async with session_factory() as session:
        result = await session.execute(select(Event.available_seats).where(Event.id == event_id))
        return result.scalar_one()


# --- fixtures ---------------------------------------------------------------


@pytest_asyncio.fixture
async def user_a(session_factory) -> int:
    return await add_user(session_factory, "alice@example.com", name="Alice")


@pytest_asyncio.fixture
async def user_b(session_factory) -> int:
    return await add_user(session_factory, "bob@example.com", name="Bob")


@pytest_asyncio.fixture
async def user_c(session_factory) -> int:
    return await add_user(session_factory, "carol@example.com", name="Carol")


@pytest_asyncio.fixture
async def admin_user(session_factory) -> int:
    return await add_user(session_factory, "admin@example.com", name="Admin", role="admin")


@pytest_asyncio.fixture
async def test_event(session_factory) -> int:
    """An upcoming event with 50 free seats."""
    return await add_event(session_factory, total_seats=50)


@pytest_asyncio.fixture
async def closed_event(session_factory) -> int:
    return await add_event(session_factory, total_seats=20, status="closed", title="Closed Show")


@pytest_asyncio.fixture
async def sold_out_event(session_factory) -> int:
    return await add_event(session_factory, total_seats=10, available_seats=0, title="Sold Out Show")


@pytest_asyncio.fixture
async def admin_headers(admin_user: int) -> dict:
    token = create_access_token(data={"sub": str(admin_user), "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def user_headers(user_a: int) -> dict:
    token = create_access_token(data={"sub": str(user_a), "role": "user"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(session_factory):
    async def _make(email: str, name: str = "Test User", role: str = "user") -> int:
        return await add_user(session_factory, email, name=name, role=role)
    return _make


@pytest.fixture
def make_event(session_factory):
    async def _make(**kwargs) -> int:
        return await add_event(session_factory, **kwargs)
    return _make


@pytest.fixture
def seats_left(session_factory):
    """Read an event's available_seats through a fresh session."""
    async def _read(event_id: int) -> int:
        return await available_seats(session_factory, event_id)
    return _read
