from slotbook.schemas.booking import (
    BookingCreate, BookingResponse, BookingJob, BookingJobResult, Rejection,
)
from slotbook.schemas.slot import SlotCreate, SlotResponse
from slotbook.schemas.error import ErrorDetail, ErrorResponse

__all__ = [
    "BookingCreate", "BookingResponse", "BookingJob", "BookingJobResult", "Rejection",
    "SlotCreate", "SlotResponse",
    "ErrorDetail", "ErrorResponse",
]
