"""Business hours, blackouts and availability overrides."""
from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from booking_engine.db.base import Base
from booking_engine.models.mixins import TimestampMixin


class BlackoutRecurrence(str, enum.Enum):
    """How a blackout date repeats."""

    NONE = "none"
    WEEKLY = "weekly"
    YEARLY = "yearly"


class BusinessHour(TimestampMixin, Base):
    """Weekly operating hours template (0 = Monday)."""

    __tablename__ = "business_hours"
    __table_args__ = (
        UniqueConstraint("day_of_week", name="uq_business_hours_day"),
        CheckConstraint(
            "day_of_week >= 0 AND day_of_week <= 6", name="ck_business_hours_day"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    open_time: Mapped[time | None] = mapped_column(Time())
    close_time: Mapped[time | None] = mapped_column(Time())
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class BlackoutDate(TimestampMixin, Base):
    """A date (or recurring date) on which no capacity is offered."""

    __tablename__ = "blackout_dates"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    blackout_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    recurrence: Mapped[BlackoutRecurrence] = mapped_column(
        Enum(
            BlackoutRecurrence,
            name="blackout_recurrence",
            values_callable=lambda enum_cls: [item.value for item in enum_cls],
        ),
        nullable=False,
        default=BlackoutRecurrence.NONE,
    )
    start_time: Mapped[time | None] = mapped_column(Time())
    end_time: Mapped[time | None] = mapped_column(Time())
    zone_tag: Mapped[str | None] = mapped_column(String(16))
    reason: Mapped[str | None] = mapped_column(String(255))


class AvailabilityOverride(TimestampMixin, Base):
    """Operator adjustment of capacity for a date or a window on that date."""

    __tablename__ = "availability_overrides"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    override_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time | None] = mapped_column(Time())
    end_time: Mapped[time | None] = mapped_column(Time())
    capacity_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reopens: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[str | None] = mapped_column(String(255))
    created_by: Mapped[str | None] = mapped_column(String(120))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
