"""
Direct admission strategy - no queue.
Relies entirely on the row lock inside the admission transaction.
"""

from typing import Callable

from sqlalchemy.ext.asyncio import async_sessionmaker

from slotbook.db.session import get_session_factory
from slotbook.schemas.booking import BookingResponse
from slotbook.services import booking_service
from slotbook.services.interfaces.admission import AdmissionStrategy


class DirectAdmission(AdmissionStrategy):
    """
    Book on the request's own task.

    Use when:
    - Normal load scenarios
    - "First to take the lock wins" is an acceptable tie-break
    - Throughput preferred over strict arrival order
    """

    name = "direct"

    def __init__(self, session_factory_getter: Callable[[], async_sessionmaker] = get_session_factory):
        self._session_factory_getter = session_factory_getter

    async def admit(self, user_id: int, slot_id: int) -> BookingResponse:
        booking = await booking_service.book(self._session_factory_getter(), user_id, slot_id)
        return BookingResponse.model_validate(booking)
