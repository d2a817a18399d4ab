"""Initial booking engine schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("capacity_units", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("depot_latitude", sa.Float()),
        sa.Column("depot_longitude", sa.Float()),
        sa.Column("home_postal_code", sa.String(length=16)),
        *_timestamps(),
        sa.CheckConstraint("capacity_units > 0", name="ck_vehicle_capacity_positive"),
    )

    op.create_table(
        "postal_geos",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("postal_code", sa.String(length=16), nullable=False, unique=True),
        sa.Column("city", sa.String(length=120)),
        sa.Column("region", sa.String(length=64)),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
    )

    op.create_table(
        "business_hours",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("open_time", sa.Time()),
        sa.Column("close_time", sa.Time()),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("day_of_week", name="uq_business_hours_day"),
        sa.CheckConstraint(
            "day_of_week >= 0 AND day_of_week <= 6", name="ck_business_hours_day"
        ),
    )

    blackout_recurrence_enum = sa.Enum(
        "none", "weekly", "yearly", name="blackout_recurrence"
    )
    op.create_table(
        "blackout_dates",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("blackout_date", sa.Date(), nullable=False),
        sa.Column(
            "recurrence",
            blackout_recurrence_enum,
            nullable=False,
            server_default="none",
        ),
        sa.Column("start_time", sa.Time()),
        sa.Column("end_time", sa.Time()),
        sa.Column("zone_tag", sa.String(length=16)),
        sa.Column("reason", sa.String(length=255)),
        *_timestamps(),
    )
    op.create_index("ix_blackout_dates_blackout_date", "blackout_dates", ["blackout_date"])

    op.create_table(
        "availability_overrides",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("override_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time()),
        sa.Column("end_time", sa.Time()),
        sa.Column("capacity_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reopens", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reason", sa.String(length=255)),
        sa.Column("created_by", sa.String(length=120)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index(
        "ix_availability_overrides_override_date",
        "availability_overrides",
        ["override_date"],
    )

    op.create_table(
        "slot_capacities",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("window_start", sa.Time(), nullable=False),
        sa.Column("window_end", sa.Time(), nullable=False),
        sa.Column("reserved_units", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("capacity_units", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "slot_date", "window_start", "window_end", name="uq_slot_capacity_window"
        ),
        sa.CheckConstraint("reserved_units >= 0", name="ck_slot_reserved_non_negative"),
    )

    op.create_table(
        "capacity_reservations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "slot_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("slot_capacities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("booking_id", sa.Uuid(as_uuid=True)),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_reservation_amount_positive"),
    )
    op.create_index(
        "ix_capacity_reservations_slot_id", "capacity_reservations", ["slot_id"]
    )
    op.create_index(
        "ix_capacity_reservations_booking_id", "capacity_reservations", ["booking_id"]
    )

    service_kind_enum = sa.Enum("pickup", "delivery", name="service_kind")
    booking_status_enum = sa.Enum(
        "pending", "confirmed", "cancelled", "completed", name="booking_status"
    )
    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("customer_ref", sa.String(length=120), nullable=False),
        sa.Column("service_kind", service_kind_enum, nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("postal_code", sa.String(length=16)),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("distance_miles", sa.Float(), nullable=False),
        sa.Column("zone_tag", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("quoted_price", sa.Numeric(10, 2)),
        sa.Column("notes", sa.String(length=1024)),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False, unique=True),
        sa.Column("request_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("reservation_id", sa.Uuid(as_uuid=True)),
        sa.Column("vehicle_id", sa.Uuid(as_uuid=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint("window_end > window_start", name="ck_booking_window"),
        sa.CheckConstraint("amount > 0", name="ck_booking_amount_positive"),
    )
    op.create_index("ix_bookings_customer_ref", "bookings", ["customer_ref"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_window_start", "bookings", ["window_start"])
    op.create_index("ix_bookings_zone_tag", "bookings", ["zone_tag"])
    op.create_index("ix_bookings_vehicle_id", "bookings", ["vehicle_id"])

    op.create_table(
        "idempotency_records",
        sa.Column("idempotency_key", sa.String(length=255), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("request_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("idempotency_records")
    op.drop_index("ix_bookings_vehicle_id", table_name="bookings")
    op.drop_index("ix_bookings_zone_tag", table_name="bookings")
    op.drop_index("ix_bookings_window_start", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_customer_ref", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_capacity_reservations_booking_id", table_name="capacity_reservations")
    op.drop_index("ix_capacity_reservations_slot_id", table_name="capacity_reservations")
    op.drop_table("capacity_reservations")
    op.drop_table("slot_capacities")
    op.drop_index(
        "ix_availability_overrides_override_date", table_name="availability_overrides"
    )
    op.drop_table("availability_overrides")
    op.drop_index("ix_blackout_dates_blackout_date", table_name="blackout_dates")
    op.drop_table("blackout_dates")
    op.drop_table("business_hours")
    op.drop_table("postal_geos")
    op.drop_table("vehicles")

    bind = op.get_bind()
    for enum_name in ("booking_status", "service_kind", "blackout_recurrence"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
