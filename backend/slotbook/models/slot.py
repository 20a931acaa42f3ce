"""
Slot model: one host's bookable time range.

Key design decisions:
- status is a plain string with a CHECK constraint (AVAILABLE, BOOKED, CANCELLED)
- start_time < end_time is enforced by CHECK slot_valid_time_range
- slot_no_overlap (PostgreSQL only) is a GiST exclusion constraint rejecting
  two non-cancelled slots of the same host whose [start, end) ranges overlap.
  It backs up the application-level overlap check in slot_service.
- Composite indexes cover the host/time and status/time lookups
"""

import enum

from sqlalchemy import Column, Integer, String, ForeignKey, Index, CheckConstraint, DDL, event, func, text
from sqlalchemy.dialects.postgresql import ExcludeConstraint
from sqlalchemy.orm import relationship

from slotbook.db.base import Base, TimestampMixin, UTCDateTime


class SlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"


class Slot(Base, TimestampMixin):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, index=True)
    host_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(String(20), nullable=False, default=SlotStatus.AVAILABLE.value)

    # Relationships
    host = relationship("User", back_populates="slots", lazy="raise")
    bookings = relationship("Booking", back_populates="slot", lazy="raise")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="slot_valid_time_range"),
        CheckConstraint("status IN ('AVAILABLE', 'BOOKED', 'CANCELLED')", name="check_slot_status"),
        Index("ix_slots_host_start", "host_id", "start_time"),
        Index("ix_slots_status_start", "status", "start_time"),
        Index("ix_slots_host_status", "host_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Slot(id={self.id}, host={self.host_id}, start={self.start_time}, status={self.status})>"


Slot.__table__.append_constraint(
    ExcludeConstraint(
        (Slot.__table__.c.host_id, "="),
        (func.tstzrange(Slot.__table__.c.start_time, Slot.__table__.c.end_time, "[)"), "&&"),
        name="slot_no_overlap",
        using="gist",
        where=text("status <> 'CANCELLED'"),
    ).ddl_if(dialect="postgresql")
)

# The exclusion constraint compares an integer with "=" inside a GiST index
event.listen(
    Base.metadata,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
