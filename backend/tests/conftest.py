"""Test fixtures for the booking engine."""
from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, time, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

from booking_engine.core.config import get_settings
from booking_engine.core.security import create_access_token
from booking_engine.db.base import Base
from booking_engine.db.session import dispose_engine, get_sessionmaker
from booking_engine.main import app
from booking_engine.models import BusinessHour, PostalGeo, Vehicle

# Coordinates near the default depot (Princeton area) plus one far outside.
POSTAL_FIXTURES = [
    ("08540", "Princeton", "NJ", 40.3573, -74.6672),
    ("08608", "Trenton", "NJ", 40.2206, -74.7597),
    ("08901", "New Brunswick", "NJ", 40.4862, -74.4518),
    ("07030", "Hoboken", "NJ", 40.7439, -74.0324),
]


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest_asyncio.fixture()
async def seeded(reset_database: None, db_url: str) -> dict[str, object]:
    """Open every day 08:00-18:00 with one 100-unit vehicle and known postal codes."""
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        for day_of_week in range(7):
            session.add(
                BusinessHour(
                    day_of_week=day_of_week,
                    open_time=time(8, 0),
                    close_time=time(18, 0),
                )
            )
        for postal_code, city, region, latitude, longitude in POSTAL_FIXTURES:
            session.add(
                PostalGeo(
                    postal_code=postal_code,
                    city=city,
                    region=region,
                    latitude=latitude,
                    longitude=longitude,
                )
            )
        vehicle = Vehicle(name="Truck 1", capacity_units=100)
        session.add(vehicle)
        await session.commit()
        return {"vehicle_id": vehicle.id}


@pytest.fixture()
def slot_window() -> Callable[..., tuple[datetime, datetime]]:
    """Return a factory for a bookable two-hour window ``days_ahead`` from today."""

    def _factory(days_ahead: int = 3, hour: int = 10) -> tuple[datetime, datetime]:
        day = datetime.now(UTC).date() + timedelta(days=days_ahead)
        start = datetime.combine(day, time(hour, 0), tzinfo=UTC)
        return start, start + timedelta(hours=2)

    return _factory


@pytest_asyncio.fixture()
async def app_context(
    seeded: dict[str, object], db_url: str
) -> AsyncIterator[dict[str, object]]:
    """Yield an async client, seeded data and bearer headers per role."""
    context: dict[str, object] = dict(seeded)
    context["customer_headers"] = {
        "Authorization": f"Bearer {create_access_token('customer-1', 'customer')}"
    }
    context["other_customer_headers"] = {
        "Authorization": f"Bearer {create_access_token('customer-2', 'customer')}"
    }
    context["dispatcher_headers"] = {
        "Authorization": f"Bearer {create_access_token('dispatch-1', 'dispatcher')}"
    }
    context["admin_headers"] = {
        "Authorization": f"Bearer {create_access_token('admin-1', 'admin')}"
    }

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        context["client"] = client
        yield context
