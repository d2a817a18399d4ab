"""Capacity ledger tables: per-slot counters and reservations."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_engine.db.base import Base
from booking_engine.models.mixins import TimestampMixin


class SlotCapacity(TimestampMixin, Base):
    """Running reserved total for one (date, window) slot."""

    __tablename__ = "slot_capacities"
    __table_args__ = (
        UniqueConstraint(
            "slot_date", "window_start", "window_end", name="uq_slot_capacity_window"
        ),
        CheckConstraint("reserved_units >= 0", name="ck_slot_reserved_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    window_start: Mapped[time] = mapped_column(Time(), nullable=False)
    window_end: Mapped[time] = mapped_column(Time(), nullable=False)
    reserved_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    capacity_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    reservations: Mapped[list["CapacityReservation"]] = relationship(
        "CapacityReservation", back_populates="slot"
    )


class CapacityReservation(TimestampMixin, Base):
    """Amount held against a slot on behalf of one booking."""

    __tablename__ = "capacity_reservations"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_reservation_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    slot_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("slot_capacities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    slot: Mapped[SlotCapacity] = relationship(
        "SlotCapacity", back_populates="reservations"
    )
