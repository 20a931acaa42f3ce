"""
Booking endpoints: the admission call and the cancellation call.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.api.deps import enforce_booking_rate_limit, get_current_user_id
from slotbook.db.session import get_db, get_session_factory
from slotbook.schemas.booking import BookingCreate, BookingResponse
from slotbook.services import booking_service
from slotbook.services.interfaces.admission import AdmissionStrategy
from slotbook.services.strategy_factory import get_admission

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "/",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_booking_rate_limit)],
)
async def create_booking(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    admission: AdmissionStrategy = Depends(get_admission),
):
    """
    Book an available slot.

    Exactly one concurrent caller wins a slot; everyone else gets 409.
    Not idempotent: repeating a successful call returns 409 for the now
    booked slot. Rate limited per caller (X-RateLimit-* headers).
    """
    return await admission.admit(user_id, booking_data.slot_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking(db, user_id, booking_id)


@router.delete("/{booking_id}", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
):
    """Cancel a booking more than an hour before the slot starts; the slot becomes bookable again."""
    return await booking_service.cancel(get_session_factory(), user_id, booking_id)
