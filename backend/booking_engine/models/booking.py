"""Booking and idempotency models."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from booking_engine.db.base import Base
from booking_engine.models.mixins import TimestampMixin, utcnow


class BookingStatus(str, enum.Enum):
    """Lifecycle states for bookings."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ServiceKind(str, enum.Enum):
    """Whether the vehicle collects from or delivers to the location."""

    PICKUP = "pickup"
    DELIVERY = "delivery"


class Booking(TimestampMixin, Base):
    """A granted pickup/delivery slot.

    ``reservation_id`` and ``vehicle_id`` are lookups only; the capacity ledger
    owns reservation rows and fleet management owns vehicles.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("window_end > window_start", name="ck_booking_window"),
        CheckConstraint("amount > 0", name="ck_booking_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    customer_ref: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    service_kind: Mapped[ServiceKind] = mapped_column(
        Enum(
            ServiceKind,
            name="service_kind",
            values_callable=lambda enum_cls: [item.value for item in enum_cls],
        ),
        nullable=False,
        default=ServiceKind.PICKUP,
    )
    status: Mapped[BookingStatus] = mapped_column(
        Enum(
            BookingStatus,
            name="booking_status",
            values_callable=lambda enum_cls: [item.value for item in enum_cls],
        ),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )
    window_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    window_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    postal_code: Mapped[str | None] = mapped_column(String(16))
    latitude: Mapped[float] = mapped_column(Float(), nullable=False)
    longitude: Mapped[float] = mapped_column(Float(), nullable=False)
    distance_miles: Mapped[float] = mapped_column(Float(), nullable=False)
    zone_tag: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    quoted_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    notes: Mapped[str | None] = mapped_column(String(1024))
    idempotency_key: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    request_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    reservation_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    vehicle_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class IdempotencyRecord(Base):
    """Maps a client-supplied idempotency key to the booking it produced."""

    __tablename__ = "idempotency_records"

    idempotency_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    request_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
