from slotbook.models.user import User, UserRole
from slotbook.models.slot import Slot, SlotStatus
from slotbook.models.booking import Booking, BookingStatus

__all__ = ["User", "UserRole", "Slot", "SlotStatus", "Booking", "BookingStatus"]
