"""
Queue admission strategy - strict first-come-first-served.
"""

from typing import Optional

from slotbook.schemas.booking import BookingResponse
from slotbook.services.booking_queue import BookingQueue
from slotbook.services.interfaces.admission import AdmissionStrategy


class QueueAdmission(AdmissionStrategy):
    """
    Hand every attempt to the single booking worker and wait for its result.

    Use when:
    - Flash bursts on a handful of slots
    - Arrival order must decide the winner, not lock timing
    - Lower throughput is acceptable (one admission transaction at a time)
    """

    name = "queue"

    def __init__(self, queue: Optional[BookingQueue] = None, timeout: Optional[float] = None):
        self.queue = queue or BookingQueue()
        self.timeout = timeout

    async def admit(self, user_id: int, slot_id: int) -> BookingResponse:
        return await self.queue.submit(user_id, slot_id, timeout=self.timeout)
