"""Capacity ledger: atomic reservation and idempotent release."""
from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime, time, timedelta

import pytest
from sqlalchemy import func, select

from booking_engine.core.errors import InsufficientCapacity, ValidationError
from booking_engine.db.session import get_sessionmaker
from booking_engine.models import AvailabilityOverride, CapacityReservation, Vehicle
from booking_engine.services import capacity_ledger
from booking_engine.services.calendar_service import CalendarWindow
from booking_engine.services.capacity_ledger import SlotKey


def _key(days_ahead: int = 3) -> SlotKey:
    return SlotKey(
        datetime.now(UTC).date() + timedelta(days=days_ahead), time(10), time(12)
    )


async def _reserve(db_url: str, key: SlotKey, amount: int, capacity: int) -> bool:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        try:
            await capacity_ledger.try_reserve(session, key, amount, capacity=capacity)
        except InsufficientCapacity:
            await session.rollback()
            return False
        await session.commit()
        return True


@pytest.mark.asyncio
async def test_reserve_until_full(seeded, db_url: str) -> None:
    key = _key()
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        reservation = await capacity_ledger.try_reserve(session, key, 60, capacity=100)
        await session.commit()
        assert reservation.amount == 60

        with pytest.raises(InsufficientCapacity) as excinfo:
            await capacity_ledger.try_reserve(session, key, 50, capacity=100)
        await session.rollback()

        assert excinfo.value.context["remaining"] == 40
        assert excinfo.value.context["amount"] == 50
        assert await capacity_ledger.reserved_units(session, key) == 60

        await capacity_ledger.try_reserve(session, key, 40, capacity=100)
        await session.commit()
        assert await capacity_ledger.reserved_units(session, key) == 100


@pytest.mark.asyncio
async def test_non_positive_amount_is_rejected(seeded, db_url: str) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        with pytest.raises(ValidationError):
            await capacity_ledger.try_reserve(session, _key(), 0, capacity=100)


@pytest.mark.asyncio
async def test_concurrent_reservations_never_overcommit(seeded, db_url: str) -> None:
    key = _key()

    results = await asyncio.gather(
        *(_reserve(db_url, key, 30, 100) for _ in range(5))
    )

    assert results.count(True) == 3
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        assert await capacity_ledger.reserved_units(session, key) == 90
        held = await session.execute(
            select(func.sum(CapacityReservation.amount)).where(
                CapacityReservation.released_at.is_(None)
            )
        )
        assert held.scalar_one() == 90


@pytest.mark.asyncio
async def test_release_returns_units_once(seeded, db_url: str) -> None:
    key = _key()
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        reservation = await capacity_ledger.try_reserve(session, key, 70, capacity=100)
        await session.commit()
        reservation_id = reservation.id

    async def _release() -> bool:
        async with sessionmaker() as session:
            released = await capacity_ledger.release(session, reservation_id)
            await session.commit()
            return released

    outcomes = await asyncio.gather(_release(), _release())
    again = await _release()

    assert sorted(outcomes) == [False, True]
    assert again is False
    async with sessionmaker() as session:
        assert await capacity_ledger.reserved_units(session, key) == 0


@pytest.mark.asyncio
async def test_capacity_remaining_follows_fleet_and_overrides(seeded, db_url: str) -> None:
    key = _key()
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        assert await capacity_ledger.capacity_remaining(session, key) == 100

        await capacity_ledger.try_reserve(session, key, 60, capacity=100)
        session.add(Vehicle(name="Van 1", capacity_units=30))
        session.add(
            AvailabilityOverride(
                override_date=key.slot_date,
                start_time=time(10),
                end_time=time(12),
                capacity_delta=-10,
            )
        )
        await session.commit()

        assert await capacity_ledger.capacity_remaining(session, key) == 60
        off_grid = SlotKey(key.slot_date, time(11), time(13))
        assert await capacity_ledger.capacity_remaining(session, off_grid) == 0


def test_slot_capacity_clamps_and_closes() -> None:
    start = datetime(2030, 3, 14, 10, tzinfo=UTC)
    window = CalendarWindow(
        slot_date=date(2030, 3, 14), start=start, end=start + timedelta(hours=2)
    )
    deficit = CalendarWindow(
        slot_date=window.slot_date, start=start, end=window.end, capacity_delta=-500
    )
    closed = CalendarWindow(
        slot_date=window.slot_date, start=start, end=window.end, closed=True
    )

    assert capacity_ledger.slot_capacity(window, 100) == 100
    assert capacity_ledger.slot_capacity(deficit, 100) == 0
    assert capacity_ledger.slot_capacity(closed, 100) == 0
