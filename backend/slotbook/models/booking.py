"""
Booking model linking a user to a slot.

Key design decisions:
- unique_confirmed_booking_per_slot is a partial unique index on slot_id
  restricted to status = 'CONFIRMED'. Any number of CANCELLED rows may point
  at the same slot (history), but a second CONFIRMED row is rejected by the
  store itself even if the row lock and the status check were bypassed.
- Status field allows cancellation without deleting records
"""

import enum

from sqlalchemy import Column, Integer, String, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from slotbook.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value)

    # Relationships
    slot = relationship("Slot", back_populates="bookings", lazy="raise")
    user = relationship("User", back_populates="bookings", lazy="raise")

    __table_args__ = (
        CheckConstraint("status IN ('CONFIRMED', 'CANCELLED')", name="check_booking_status"),
        Index(
            "unique_confirmed_booking_per_slot",
            "slot_id",
            unique=True,
            postgresql_where=text("status = 'CONFIRMED'"),
            sqlite_where=text("status = 'CONFIRMED'"),
        ),
        Index("ix_bookings_user_status", "user_id", "status"),
        Index("ix_bookings_slot_id", "slot_id"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, slot={self.slot_id}, status={self.status})>"
