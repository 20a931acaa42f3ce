"""Initial schema: users, slots, bookings with the admission constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Needed for "host_id WITH =" inside a GiST index
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("roles", sa.JSON(), nullable=False, server_default=sa.text("'[\"GUEST\"]'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Slots table
    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'AVAILABLE'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("end_time > start_time", name="slot_valid_time_range"),
        sa.CheckConstraint("status IN ('AVAILABLE', 'BOOKED', 'CANCELLED')", name="check_slot_status"),
    )
    op.create_index("ix_slots_id", "slots", ["id"])
    op.create_index("ix_slots_host_start", "slots", ["host_id", "start_time"])
    op.create_index("ix_slots_status_start", "slots", ["status", "start_time"])
    op.create_index("ix_slots_host_status", "slots", ["host_id", "status"])

    # NO OVERLAPPING SLOTS PER HOST: storage-level backstop for the overlap
    # check in slot_service. Two live slots of one host whose [start, end)
    # ranges intersect cannot both be committed, however the inserts race.
    # Cancelled slots are history and do not block a new slot.
    op.execute(
        """
        ALTER TABLE slots
        ADD CONSTRAINT slot_no_overlap
        EXCLUDE USING gist (
            host_id WITH =,
            tstzrange(start_time, end_time, '[)') WITH &&
        ) WHERE (status <> 'CANCELLED')
        """
    )

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("slots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'CONFIRMED'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('CONFIRMED', 'CANCELLED')", name="check_booking_status"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_status", "bookings", ["user_id", "status"])
    op.create_index("ix_bookings_slot_id", "bookings", ["slot_id"])
    # ONE CONFIRMED BOOKING PER SLOT: the last line of defense against double
    # booking. Partial, so cancelled bookings stay as history and a slot can
    # be booked again after a cancellation.
    op.create_index(
        "unique_confirmed_booking_per_slot",
        "bookings",
        ["slot_id"],
        unique=True,
        postgresql_where=sa.text("status = 'CONFIRMED'"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.execute("ALTER TABLE slots DROP CONSTRAINT IF EXISTS slot_no_overlap")
    op.drop_table("slots")
    op.drop_table("users")
