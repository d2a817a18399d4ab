"""Capacity ledger: per-slot reserved totals and the reservations behind them.

The ledger is the only writer of ``slot_capacities`` and
``capacity_reservations``. Reservation is a single conditional UPDATE on the
slot counter, so two concurrent callers can never jointly exceed the slot's
capacity. Functions here never commit; they run inside the caller's unit of
work.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import Settings
from booking_engine.core.errors import (
    InsufficientCapacity,
    TransientStorageError,
    ValidationError,
)
from booking_engine.models.capacity import CapacityReservation, SlotCapacity
from booking_engine.models.vehicle import Vehicle
from booking_engine.services import calendar_service
from booking_engine.services.calendar_service import CalendarWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SlotKey:
    """Identity of a slot in the ledger: local date and window bounds."""

    slot_date: date
    window_start: time
    window_end: time

    @classmethod
    def for_window(cls, window: CalendarWindow) -> "SlotKey":
        return cls(window.slot_date, window.start_time, window.end_time)

    def describe(self) -> str:
        return f"{self.slot_date.isoformat()} {self.window_start:%H:%M}-{self.window_end:%H:%M}"


async def active_fleet_capacity(session: AsyncSession) -> int:
    """Total capacity of every active vehicle."""
    result = await session.execute(
        select(func.coalesce(func.sum(Vehicle.capacity_units), 0)).where(
            Vehicle.active.is_(True)
        )
    )
    return int(result.scalar_one())


def slot_capacity(window: CalendarWindow, fleet_capacity: int) -> int:
    """Fleet capacity adjusted by overrides; closed windows and deficits give zero."""
    if window.closed:
        return 0
    return max(0, fleet_capacity + window.capacity_delta)


def _slot_clause(key: SlotKey):
    return (
        SlotCapacity.slot_date == key.slot_date,
        SlotCapacity.window_start == key.window_start,
        SlotCapacity.window_end == key.window_end,
    )


async def get_slot(session: AsyncSession, key: SlotKey) -> SlotCapacity | None:
    result = await session.execute(select(SlotCapacity).where(*_slot_clause(key)))
    return result.scalar_one_or_none()


async def reserved_units(session: AsyncSession, key: SlotKey) -> int:
    result = await session.execute(
        select(SlotCapacity.reserved_units).where(*_slot_clause(key))
    )
    value = result.scalar_one_or_none()
    return int(value or 0)


async def reserved_by_slot(
    session: AsyncSession, *, start_date: date, end_date: date
) -> dict[SlotKey, int]:
    """Reserved totals for every counter in a date range, in one query."""
    result = await session.execute(
        select(
            SlotCapacity.slot_date,
            SlotCapacity.window_start,
            SlotCapacity.window_end,
            SlotCapacity.reserved_units,
        ).where(
            SlotCapacity.slot_date >= start_date,
            SlotCapacity.slot_date <= end_date,
        )
    )
    return {
        SlotKey(slot_date, window_start, window_end): int(reserved)
        for slot_date, window_start, window_end, reserved in result.all()
    }


async def ensure_slot(session: AsyncSession, key: SlotKey) -> SlotCapacity:
    """Return the counter row for a slot, creating it if needed.

    Must run before anything else is written in the unit of work: losing the
    insert race rolls the session back before re-reading the winner's row.
    """
    existing = await get_slot(session, key)
    if existing is not None:
        return existing

    slot = SlotCapacity(
        slot_date=key.slot_date,
        window_start=key.window_start,
        window_end=key.window_end,
        reserved_units=0,
        capacity_units=0,
    )
    session.add(slot)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        existing = await get_slot(session, key)
        if existing is None:
            raise TransientStorageError(
                "Slot counter could not be created", slot=key.describe()
            )
        return existing
    return slot


async def try_reserve(
    session: AsyncSession,
    key: SlotKey,
    amount: int,
    *,
    capacity: int,
) -> CapacityReservation:
    """Atomically hold ``amount`` units of a slot or raise InsufficientCapacity."""
    if amount <= 0:
        raise ValidationError("Reservation amount must be positive", amount=amount)

    slot = await ensure_slot(session, key)
    result = await session.execute(
        update(SlotCapacity)
        .where(
            SlotCapacity.id == slot.id,
            SlotCapacity.reserved_units + amount <= capacity,
        )
        .values(
            reserved_units=SlotCapacity.reserved_units + amount,
            capacity_units=capacity,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        reserved = await reserved_units(session, key)
        logger.info(
            "Slot %s rejected %d units (reserved %d of %d)",
            key.describe(),
            amount,
            reserved,
            capacity,
        )
        raise InsufficientCapacity(
            "Not enough capacity left in the requested slot",
            slot=key.describe(),
            amount=amount,
            remaining=max(0, capacity - reserved),
        )

    reservation = CapacityReservation(slot_id=slot.id, amount=amount)
    session.add(reservation)
    await session.flush()
    return reservation


async def release(
    session: AsyncSession,
    reservation_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> bool:
    """Return held units to the slot. Releasing twice has no further effect."""
    row = (
        await session.execute(
            select(CapacityReservation.slot_id, CapacityReservation.amount).where(
                CapacityReservation.id == reservation_id
            )
        )
    ).one_or_none()
    if row is None:
        return False
    slot_id, amount = row

    claimed = await session.execute(
        update(CapacityReservation)
        .where(
            CapacityReservation.id == reservation_id,
            CapacityReservation.released_at.is_(None),
        )
        .values(released_at=now or datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return False

    await session.execute(
        update(SlotCapacity)
        .where(SlotCapacity.id == slot_id)
        .values(reserved_units=SlotCapacity.reserved_units - amount)
        .execution_options(synchronize_session=False)
    )
    return True


async def capacity_for_window(session: AsyncSession, window: CalendarWindow) -> int:
    return slot_capacity(window, await active_fleet_capacity(session))


async def capacity_remaining(
    session: AsyncSession,
    key: SlotKey,
    *,
    settings: Settings | None = None,
) -> int:
    """Units still available in a slot; zero for slots outside the calendar."""
    snapshot = await calendar_service.load_calendar(
        session, start_date=key.slot_date, end_date=key.slot_date, settings=settings
    )
    window = next(
        (
            candidate
            for candidate in snapshot.windows(key.slot_date, key.slot_date)
            if SlotKey.for_window(candidate) == key
        ),
        None,
    )
    if window is None:
        return 0
    total = await capacity_for_window(session, window)
    return max(0, total - await reserved_units(session, key))
