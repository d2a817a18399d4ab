"""Fleet vehicles."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from booking_engine.db.base import Base
from booking_engine.models.mixins import TimestampMixin


class Vehicle(TimestampMixin, Base):
    """A vehicle whose capacity feeds every slot it is active for.

    Fleet management creates and retires vehicles; the engine only reads them.
    """

    __tablename__ = "vehicles"
    __table_args__ = (
        CheckConstraint("capacity_units > 0", name="ck_vehicle_capacity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    capacity_units: Mapped[int] = mapped_column(Integer(), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    depot_latitude: Mapped[float | None] = mapped_column(Float())
    depot_longitude: Mapped[float | None] = mapped_column(Float())
    home_postal_code: Mapped[str | None] = mapped_column(String(16))
