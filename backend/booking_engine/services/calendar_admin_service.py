"""Manage business hours, blackout dates and availability overrides."""
from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.models.calendar import AvailabilityOverride, BlackoutDate, BusinessHour
from booking_engine.schemas.calendar import BlackoutCreate, BusinessHourWrite, OverrideCreate


async def list_hours(session: AsyncSession) -> list[BusinessHour]:
    stmt: Select[tuple[BusinessHour]] = select(BusinessHour).order_by(
        BusinessHour.day_of_week.asc()
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def upsert_hour(session: AsyncSession, *, payload: BusinessHourWrite) -> BusinessHour:
    existing_stmt = select(BusinessHour).where(
        BusinessHour.day_of_week == payload.day_of_week
    )
    existing = (await session.execute(existing_stmt)).scalar_one_or_none()
    if existing is None:
        hour = BusinessHour(
            day_of_week=payload.day_of_week,
            open_time=payload.open_time,
            close_time=payload.close_time,
            is_closed=payload.is_closed,
        )
        session.add(hour)
        await session.commit()
        await session.refresh(hour)
        return hour

    existing.open_time = payload.open_time
    existing.close_time = payload.close_time
    existing.is_closed = payload.is_closed
    await session.commit()
    await session.refresh(existing)
    return existing


async def list_blackouts(
    session: AsyncSession,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[BlackoutDate]:
    stmt: Select[tuple[BlackoutDate]] = select(BlackoutDate).order_by(
        BlackoutDate.blackout_date.asc()
    )
    if start_date is not None:
        stmt = stmt.where(BlackoutDate.blackout_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(BlackoutDate.blackout_date <= end_date)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_blackout(session: AsyncSession, *, payload: BlackoutCreate) -> BlackoutDate:
    blackout = BlackoutDate(**payload.model_dump())
    session.add(blackout)
    await session.commit()
    await session.refresh(blackout)
    return blackout


async def get_blackout(session: AsyncSession, blackout_id: uuid.UUID) -> BlackoutDate | None:
    return await session.get(BlackoutDate, blackout_id)


async def delete_blackout(session: AsyncSession, *, blackout: BlackoutDate) -> None:
    await session.delete(blackout)
    await session.commit()


async def list_overrides(
    session: AsyncSession,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[AvailabilityOverride]:
    """Overrides in a date range; expired ones are listed until deleted."""
    stmt: Select[tuple[AvailabilityOverride]] = select(AvailabilityOverride).order_by(
        AvailabilityOverride.override_date.asc(), AvailabilityOverride.start_time.asc()
    )
    if start_date is not None:
        stmt = stmt.where(AvailabilityOverride.override_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(AvailabilityOverride.override_date <= end_date)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_override(
    session: AsyncSession,
    *,
    payload: OverrideCreate,
    created_by: str | None = None,
) -> AvailabilityOverride:
    override = AvailabilityOverride(**payload.model_dump(), created_by=created_by)
    session.add(override)
    await session.commit()
    await session.refresh(override)
    return override


async def get_override(
    session: AsyncSession, override_id: uuid.UUID
) -> AvailabilityOverride | None:
    return await session.get(AvailabilityOverride, override_id)


async def delete_override(session: AsyncSession, *, override: AvailabilityOverride) -> None:
    await session.delete(override)
    await session.commit()
