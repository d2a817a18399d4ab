"""Calendar of bookable windows.

Business hours form a weekly template that is split into fixed-length slots.
Blackout dates close (or, when zone-scoped, block a zone from) every slot they
overlap. Availability overrides adjust capacity of the slots they fully cover,
and ``is_closed`` overrides close any slot they overlap.

When a slot is blacked out, an override wins only if it sets ``reopens`` and
fully covers the slot; a partially overlapping override never reopens.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import Settings, get_settings
from booking_engine.core.errors import ValidationError
from booking_engine.models.calendar import (
    AvailabilityOverride,
    BlackoutDate,
    BlackoutRecurrence,
    BusinessHour,
)

logger = logging.getLogger(__name__)

_DAY_MINUTES = 24 * 60


def _minutes(value: time | None, default: int) -> int:
    if value is None:
        return default
    return value.hour * 60 + value.minute


def _clock(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


@dataclass(frozen=True, slots=True)
class TimeSpan:
    """Half-open minute range within a day."""

    start: int
    end: int

    @classmethod
    def from_times(cls, start: time | None, end: time | None) -> "TimeSpan":
        return cls(_minutes(start, 0), _minutes(end, _DAY_MINUTES))

    def overlaps(self, other: "TimeSpan") -> bool:
        return self.start < other.end and other.start < self.end

    def covers(self, other: "TimeSpan") -> bool:
        return self.start <= other.start and self.end >= other.end


@dataclass(frozen=True, slots=True)
class BlackoutRule:
    on: date
    recurrence: BlackoutRecurrence
    span: TimeSpan
    zone: str | None
    reason: str | None

    def applies_on(self, day: date) -> bool:
        if self.recurrence is BlackoutRecurrence.NONE:
            return day == self.on
        if day < self.on:
            return False
        if self.recurrence is BlackoutRecurrence.WEEKLY:
            return day.weekday() == self.on.weekday()
        return (day.month, day.day) == (self.on.month, self.on.day)


@dataclass(frozen=True, slots=True)
class OverrideRule:
    on: date
    span: TimeSpan
    capacity_delta: int
    is_closed: bool
    reopens: bool
    reason: str | None


@dataclass(frozen=True, slots=True)
class CalendarWindow:
    """One slot on one day, with the exceptions that apply to it."""

    slot_date: date
    start: datetime
    end: datetime
    capacity_delta: int = 0
    closed: bool = False
    blocked_zones: frozenset[str] = frozenset()
    reason: str | None = None

    @property
    def start_time(self) -> time:
        return self.start.time()

    @property
    def end_time(self) -> time:
        return self.end.time()

    def is_open_for(self, zone: str | None) -> bool:
        if self.closed:
            return False
        return zone is None or zone not in self.blocked_zones


class WindowSequence:
    """Restartable, lazily generated sequence of calendar windows."""

    def __init__(
        self,
        snapshot: "CalendarSnapshot",
        start_date: date,
        end_date: date,
        *,
        include_closed: bool,
    ) -> None:
        self._snapshot = snapshot
        self._start_date = start_date
        self._end_date = end_date
        self._include_closed = include_closed

    def __iter__(self) -> Iterator[CalendarWindow]:
        day = self._start_date
        while day <= self._end_date:
            for window in self._snapshot.windows_on(day):
                if self._include_closed or not window.closed:
                    yield window
            day += timedelta(days=1)


@dataclass(slots=True)
class CalendarSnapshot:
    """Calendar reference data loaded once for a date range."""

    hours: dict[int, TimeSpan | None]
    blackouts: list[BlackoutRule]
    overrides: list[OverrideRule]
    timezone: ZoneInfo
    slot_minutes: int
    loaded_from: date
    loaded_to: date
    _cache: dict[date, tuple[CalendarWindow, ...]] = field(default_factory=dict)

    def windows(self, start_date: date, end_date: date) -> WindowSequence:
        """Every slot in business hours, closed ones included."""
        self._check_range(start_date, end_date)
        return WindowSequence(self, start_date, end_date, include_closed=True)

    def open_windows(self, start_date: date, end_date: date) -> WindowSequence:
        """Slots that are not fully closed; zone blocks are left to the caller."""
        self._check_range(start_date, end_date)
        return WindowSequence(self, start_date, end_date, include_closed=False)

    def find_window(self, start: datetime, end: datetime) -> CalendarWindow | None:
        """Return the slot whose bounds match the given instants exactly."""
        local_start = start.astimezone(self.timezone)
        local_end = end.astimezone(self.timezone)
        day = local_start.date()
        if not self.loaded_from <= day <= self.loaded_to:
            return None
        for window in self.windows_on(day):
            if window.start == local_start and window.end == local_end:
                return window
        return None

    def windows_on(self, day: date) -> tuple[CalendarWindow, ...]:
        cached = self._cache.get(day)
        if cached is None:
            cached = tuple(self._build_day(day))
            self._cache[day] = cached
        return cached

    def _check_range(self, start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise ValidationError(
                "start_date must be before or equal to end_date",
                start_date=start_date,
                end_date=end_date,
            )
        if start_date < self.loaded_from or end_date > self.loaded_to:
            raise ValueError("Requested range is outside the loaded calendar")

    def _build_day(self, day: date) -> Iterator[CalendarWindow]:
        hours = self.hours.get(day.weekday())
        if hours is None:
            return
        blackouts = [rule for rule in self.blackouts if rule.applies_on(day)]
        overrides = [rule for rule in self.overrides if rule.on == day]

        slot_start = hours.start
        while slot_start + self.slot_minutes <= hours.end:
            span = TimeSpan(slot_start, slot_start + self.slot_minutes)
            yield self._build_window(day, span, blackouts, overrides)
            slot_start += self.slot_minutes

    def _build_window(
        self,
        day: date,
        span: TimeSpan,
        blackouts: list[BlackoutRule],
        overrides: list[OverrideRule],
    ) -> CalendarWindow:
        hitting = [rule for rule in blackouts if rule.span.overlaps(span)]
        covering = [
            rule for rule in overrides if not rule.is_closed and rule.span.covers(span)
        ]
        closing = [rule for rule in overrides if rule.is_closed and rule.span.overlaps(span)]

        reopened = any(rule.reopens for rule in covering)
        closed = False
        reason: str | None = None
        blocked: set[str] = set()
        if hitting and not reopened:
            for rule in hitting:
                if rule.zone is None:
                    closed = True
                    reason = reason or rule.reason or "blackout"
                else:
                    blocked.add(rule.zone)
        if closing:
            closed = True
            reason = closing[0].reason or "closed"

        start = datetime.combine(day, _clock(span.start), tzinfo=self.timezone)
        return CalendarWindow(
            slot_date=day,
            start=start,
            end=start + timedelta(minutes=self.slot_minutes),
            capacity_delta=sum(rule.capacity_delta for rule in covering),
            closed=closed,
            blocked_zones=frozenset(blocked),
            reason=reason,
        )


async def load_calendar(
    session: AsyncSession,
    *,
    start_date: date,
    end_date: date,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> CalendarSnapshot:
    """Read hours, blackouts and unexpired overrides relevant to a date range."""
    settings = settings or get_settings()
    now = now or datetime.now(UTC)

    hour_rows = (await session.execute(select(BusinessHour))).scalars().all()
    hours: dict[int, TimeSpan | None] = {}
    for row in hour_rows:
        if row.is_closed or row.open_time is None or row.close_time is None:
            hours[row.day_of_week] = None
            continue
        hours[row.day_of_week] = TimeSpan.from_times(row.open_time, row.close_time)

    blackout_rows = (
        await session.execute(
            select(BlackoutDate).where(
                or_(
                    and_(
                        BlackoutDate.recurrence == BlackoutRecurrence.NONE,
                        BlackoutDate.blackout_date >= start_date,
                        BlackoutDate.blackout_date <= end_date,
                    ),
                    and_(
                        BlackoutDate.recurrence != BlackoutRecurrence.NONE,
                        BlackoutDate.blackout_date <= end_date,
                    ),
                )
            )
        )
    ).scalars().all()

    override_rows = (
        await session.execute(
            select(AvailabilityOverride).where(
                AvailabilityOverride.override_date >= start_date,
                AvailabilityOverride.override_date <= end_date,
            )
        )
    ).scalars().all()

    overrides = [
        OverrideRule(
            on=row.override_date,
            span=TimeSpan.from_times(row.start_time, row.end_time),
            capacity_delta=row.capacity_delta,
            is_closed=row.is_closed,
            reopens=row.reopens,
            reason=row.reason,
        )
        for row in override_rows
        if not _expired(row.expires_at, now)
    ]
    logger.debug(
        "Loaded calendar %s..%s: %d blackouts, %d overrides",
        start_date,
        end_date,
        len(blackout_rows),
        len(overrides),
    )
    return CalendarSnapshot(
        hours=hours,
        blackouts=[
            BlackoutRule(
                on=row.blackout_date,
                recurrence=row.recurrence,
                span=TimeSpan.from_times(row.start_time, row.end_time),
                zone=row.zone_tag,
                reason=row.reason,
            )
            for row in blackout_rows
        ],
        overrides=overrides,
        timezone=ZoneInfo(settings.schedule_timezone),
        slot_minutes=settings.slot_length_minutes,
        loaded_from=start_date,
        loaded_to=end_date,
    )


def _expired(expires_at: datetime | None, now: datetime) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return expires_at <= now
