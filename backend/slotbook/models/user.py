"""
User model. Roles are a small set ({HOST, GUEST}); the admission core only
ever asks whether a user is a host.
"""

import enum

from sqlalchemy import Column, Integer, String, JSON
from sqlalchemy.orm import relationship

from slotbook.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    HOST = "HOST"
    GUEST = "GUEST"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    roles = Column(JSON, nullable=False, default=lambda: [UserRole.GUEST.value])

    # Relationships
    slots = relationship("Slot", back_populates="host", lazy="raise")
    bookings = relationship("Booking", back_populates="user", lazy="raise")

    def has_role(self, role: UserRole) -> bool:
        return UserRole(role).value in (self.roles or [])

    @property
    def is_host(self) -> bool:
        return self.has_role(UserRole.HOST)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, roles={self.roles})>"
