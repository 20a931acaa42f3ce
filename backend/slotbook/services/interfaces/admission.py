"""
Admission strategy interface.
Allows swapping how a booking attempt reaches the admission transaction.
"""

from abc import ABC, abstractmethod

from slotbook.schemas.booking import BookingResponse


class AdmissionStrategy(ABC):
    """
    Interface for admission strategies.

    Implementations:
    - DirectAdmission: run the admission transaction on the request task;
      ties between concurrent bookers go to whoever takes the row lock first
    - QueueAdmission: serialize every attempt through the FCFS booking queue;
      ties go to whoever was enqueued first
    """

    name: str = "abstract"

    @abstractmethod
    async def admit(self, user_id: int, slot_id: int) -> BookingResponse:
        """
        Attempt to book a slot.

        Args:
            user_id: Caller booking the slot
            slot_id: Slot to book

        Returns:
            The CONFIRMED booking

        Raises:
            AdmissionError: NotFound, Conflict, InvalidRequest, BookingTimeout, Internal
        """
        pass
