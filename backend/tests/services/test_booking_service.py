from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, time, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from booking_engine.core.config import get_settings
from booking_engine.core.errors import (
    Blackout,
    IdempotencyConflict,
    InsufficientCapacity,
    OutOfServiceArea,
    TransientStorageError,
    UnknownLocation,
    ValidationError,
)
from booking_engine.db.session import get_sessionmaker
from booking_engine.models import (
    BlackoutDate,
    Booking,
    BookingStatus,
    IdempotencyRecord,
    SlotCapacity,
)
from booking_engine.services import booking_service, capacity_ledger
from booking_engine.services.booking_service import BookingRequest
from booking_engine.services.capacity_ledger import SlotKey

pytestmark = pytest.mark.asyncio


def _request(window, *, key: str, amount: int, **overrides) -> BookingRequest:
    start, end = window
    fields = {
        "idempotency_key": key,
        "customer_ref": "customer-1",
        "window_start": start,
        "window_end": end,
        "amount": amount,
        "postal_code": "08540",
    }
    fields.update(overrides)
    return BookingRequest(**fields)


def _slot_key(window) -> SlotKey:
    start, end = window
    return SlotKey(start.date(), start.time(), end.time())


async def _reserved(db_url: str, window) -> int:
    async with get_sessionmaker(db_url)() as session:
        return await capacity_ledger.reserved_units(session, _slot_key(window))


async def _book(db_url: str, request: BookingRequest):
    async with get_sessionmaker(db_url)() as session:
        return await booking_service.create_booking(session, request)


async def test_sequential_bookings_share_slot_capacity(seeded, db_url, slot_window) -> None:
    window = slot_window()

    first = await _book(db_url, _request(window, key="a-1", amount=60))
    assert first.created is True
    assert first.booking.status == BookingStatus.CONFIRMED
    assert first.booking.zone_tag == "R0-E"

    with pytest.raises(InsufficientCapacity) as excinfo:
        await _book(db_url, _request(window, key="a-2", amount=50))
    assert excinfo.value.context["remaining"] == 40
    assert excinfo.value.context["amount"] == 50
    assert excinfo.value.context["window_start"] == window[0]

    assert await _reserved(db_url, window) == 60
    async with get_sessionmaker(db_url)() as session:
        remaining = await capacity_ledger.capacity_remaining(session, _slot_key(window))
    assert remaining == 40


async def test_concurrent_bookings_never_overbook(seeded, db_url, slot_window) -> None:
    window = slot_window()

    results = await asyncio.gather(
        _book(db_url, _request(window, key="c-1", amount=60)),
        _book(db_url, _request(window, key="c-2", amount=50)),
        return_exceptions=True,
    )

    successes = [item for item in results if not isinstance(item, Exception)]
    failures = [item for item in results if isinstance(item, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientCapacity)
    assert await _reserved(db_url, window) == successes[0].booking.amount


async def test_out_of_area_touches_no_counters(seeded, db_url, slot_window) -> None:
    window = slot_window()
    request = _request(
        window, key="far-1", amount=10, postal_code=None, latitude=41.88, longitude=-87.63
    )

    with pytest.raises(OutOfServiceArea) as excinfo:
        await _book(db_url, request)

    assert excinfo.value.context["distance_miles"] > 500
    async with get_sessionmaker(db_url)() as session:
        slots = await session.execute(select(func.count()).select_from(SlotCapacity))
        assert slots.scalar_one() == 0


async def test_wider_radius_admits_distant_location(seeded, db_url, slot_window) -> None:
    window = slot_window()
    settings = get_settings().model_copy(update={"service_radius_miles": 60})
    request = _request(window, key="hob-1", amount=10, postal_code="07030")

    async with get_sessionmaker(db_url)() as session:
        with pytest.raises(OutOfServiceArea):
            await booking_service.create_booking(session, request)
        outcome = await booking_service.create_booking(session, request, settings=settings)

    assert outcome.created is True
    assert outcome.booking.zone_tag.startswith("R4")


async def test_blackout_rejects_and_leaves_capacity(seeded, db_url, slot_window) -> None:
    window = slot_window()
    async with get_sessionmaker(db_url)() as session:
        session.add(BlackoutDate(blackout_date=window[0].date(), reason="Fleet service"))
        await session.commit()

    with pytest.raises(Blackout) as excinfo:
        await _book(db_url, _request(window, key="b-1", amount=10))

    assert excinfo.value.context["reason"] == "Fleet service"
    assert await _reserved(db_url, window) == 0


async def test_zone_blackout_only_blocks_that_zone(seeded, db_url, slot_window) -> None:
    window = slot_window()
    async with get_sessionmaker(db_url)() as session:
        session.add(
            BlackoutDate(
                blackout_date=window[0].date(), zone_tag="R0-E", reason="Road works"
            )
        )
        await session.commit()

    with pytest.raises(Blackout):
        await _book(db_url, _request(window, key="z-1", amount=10))
    outcome = await _book(
        db_url, _request(window, key="z-2", amount=10, postal_code="08608")
    )
    assert outcome.booking.zone_tag == "R0-S"


async def test_replay_returns_original_booking(seeded, db_url, slot_window) -> None:
    window = slot_window()
    request = _request(window, key="r-1", amount=25)

    first = await _book(db_url, request)
    second = await _book(db_url, request)

    assert second.created is False
    assert second.booking.id == first.booking.id
    assert await _reserved(db_url, window) == 25


async def test_key_reuse_with_different_request_conflicts(seeded, db_url, slot_window) -> None:
    window = slot_window()
    await _book(db_url, _request(window, key="k-1", amount=25))

    with pytest.raises(IdempotencyConflict):
        await _book(db_url, _request(window, key="k-1", amount=30))
    assert await _reserved(db_url, window) == 25


async def test_replay_after_window_start_returns_original(seeded, db_url, slot_window) -> None:
    window = slot_window()
    request = _request(window, key="late-1", amount=15)
    first = await _book(db_url, request)
    later = window[0] + timedelta(hours=1)

    async with get_sessionmaker(db_url)() as session:
        replay = await booking_service.create_booking(session, request, now=later)
    assert replay.created is False
    assert replay.booking.id == first.booking.id

    async with get_sessionmaker(db_url)() as session:
        with pytest.raises(ValidationError):
            await booking_service.create_booking(
                session, replace(request, idempotency_key="late-2"), now=later
            )
    assert await _reserved(db_url, window) == 15


async def test_key_conflict_hides_other_customers_booking(seeded, db_url, slot_window) -> None:
    window = slot_window()
    first = await _book(db_url, _request(window, key="own-1", amount=10))

    with pytest.raises(IdempotencyConflict) as excinfo:
        await _book(
            db_url, _request(window, key="own-1", amount=10, customer_ref="customer-2")
        )
    assert "booking_id" not in excinfo.value.context

    with pytest.raises(IdempotencyConflict) as excinfo:
        await _book(db_url, _request(window, key="own-1", amount=12))
    assert excinfo.value.context["booking_id"] == first.booking.id


async def test_concurrent_retries_create_one_booking(seeded, db_url, slot_window) -> None:
    window = slot_window()
    request = _request(window, key="retry-1", amount=20)

    outcomes = await asyncio.gather(*(_book(db_url, request) for _ in range(3)))

    assert sum(1 for outcome in outcomes if outcome.created) == 1
    assert len({outcome.booking.id for outcome in outcomes}) == 1
    assert await _reserved(db_url, window) == 20
    async with get_sessionmaker(db_url)() as session:
        count = await session.execute(select(func.count()).select_from(Booking))
        assert count.scalar_one() == 1


async def test_cancel_releases_once(seeded, db_url, slot_window) -> None:
    window = slot_window()
    outcome = await _book(db_url, _request(window, key="x-1", amount=40))

    async with get_sessionmaker(db_url)() as session:
        booking = await booking_service.get_booking(session, outcome.booking.id)
        booking = await booking_service.cancel_booking(session, booking=booking)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancelled_at is not None
        await booking_service.cancel_booking(session, booking=booking)

    assert await _reserved(db_url, window) == 0


async def test_completed_booking_cannot_be_cancelled(seeded, db_url, slot_window) -> None:
    window = slot_window()
    outcome = await _book(db_url, _request(window, key="done-1", amount=40))

    async with get_sessionmaker(db_url)() as session:
        booking = await booking_service.get_booking(session, outcome.booking.id)
        booking = await booking_service.complete_booking(session, booking=booking)
        assert booking.status == BookingStatus.COMPLETED
        with pytest.raises(ValidationError):
            await booking_service.cancel_booking(session, booking=booking)

    assert await _reserved(db_url, window) == 40


async def test_delete_releases_capacity_and_key(seeded, db_url, slot_window) -> None:
    window = slot_window()
    request = _request(window, key="del-1", amount=30)
    outcome = await _book(db_url, request)

    async with get_sessionmaker(db_url)() as session:
        booking = await booking_service.get_booking(session, outcome.booking.id)
        await booking_service.delete_booking(session, booking=booking)
        records = await session.execute(
            select(func.count()).select_from(IdempotencyRecord)
        )
        assert records.scalar_one() == 0

    assert await _reserved(db_url, window) == 0
    again = await _book(db_url, request)
    assert again.created is True


async def test_get_booking_scoped_to_customer(seeded, db_url, slot_window) -> None:
    outcome = await _book(db_url, _request(slot_window(), key="s-1", amount=5))

    async with get_sessionmaker(db_url)() as session:
        own = await booking_service.get_booking(
            session, outcome.booking.id, customer_ref="customer-1"
        )
        other = await booking_service.get_booking(
            session, outcome.booking.id, customer_ref="customer-2"
        )
    assert own is not None
    assert other is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"latitude": 40.35, "longitude": -74.66},
        {"postal_code": None},
        {"amount": 0},
        {"idempotency_key": "  "},
    ],
)
async def test_invalid_requests_are_rejected(seeded, db_url, slot_window, overrides) -> None:
    request = replace(_request(slot_window(), key="v-1", amount=10), **overrides)

    with pytest.raises(ValidationError):
        await _book(db_url, request)


async def test_past_and_misaligned_windows_are_rejected(seeded, db_url) -> None:
    yesterday = datetime.now(UTC).date() - timedelta(days=1)
    past_start = datetime.combine(yesterday, time(10), tzinfo=UTC)
    with pytest.raises(ValidationError):
        await _book(
            db_url,
            _request((past_start, past_start + timedelta(hours=2)), key="p-1", amount=5),
        )

    future = datetime.now(UTC).date() + timedelta(days=3)
    odd_start = datetime.combine(future, time(11), tzinfo=UTC)
    with pytest.raises(ValidationError) as excinfo:
        await _book(
            db_url,
            _request((odd_start, odd_start + timedelta(hours=2)), key="p-2", amount=5),
        )
    assert excinfo.value.context["slot_length_minutes"] == 120

    too_far = datetime.combine(
        datetime.now(UTC).date() + timedelta(days=45), time(10), tzinfo=UTC
    )
    with pytest.raises(ValidationError):
        await _book(
            db_url,
            _request((too_far, too_far + timedelta(hours=2)), key="p-3", amount=5),
        )


async def test_unknown_postal_code(seeded, db_url, slot_window) -> None:
    with pytest.raises(UnknownLocation):
        await _book(db_url, _request(slot_window(), key="u-1", amount=5, postal_code="99999"))


async def test_storage_failure_rolls_back_reservation(
    seeded, db_url, slot_window, monkeypatch
) -> None:
    window = slot_window()
    original = capacity_ledger.try_reserve

    async def _failing_reserve(*args, **kwargs):
        await original(*args, **kwargs)
        raise OperationalError("UPDATE slot_capacities", {}, Exception("disk I/O error"))

    monkeypatch.setattr(capacity_ledger, "try_reserve", _failing_reserve)

    with pytest.raises(TransientStorageError) as excinfo:
        await _book(db_url, _request(window, key="io-1", amount=30))

    assert excinfo.value.retryable is True
    assert await _reserved(db_url, window) == 0
    async with get_sessionmaker(db_url)() as session:
        count = await session.execute(select(func.count()).select_from(Booking))
        assert count.scalar_one() == 0


async def test_slow_precheck_times_out(seeded, db_url, slot_window, monkeypatch) -> None:
    async def _slow_resolve(*args, **kwargs):
        await asyncio.sleep(1)

    monkeypatch.setattr(booking_service, "resolve_location", _slow_resolve)
    settings = get_settings().model_copy(update={"precheck_timeout_seconds": 0.05})

    async with get_sessionmaker(db_url)() as session:
        with pytest.raises(TransientStorageError):
            await booking_service.create_booking(
                session, _request(slot_window(), key="slow-1", amount=5), settings=settings
            )
