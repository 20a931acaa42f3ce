"""
Shared test helpers (not fixtures).
"""

from sqlalchemy import select

from slotbook.models import Booking, BookingStatus, Slot, User


def headers_for(user: User) -> dict:
    return {"X-User-Id": str(user.id)}


async def fetch_slot(session_factory, slot_id: int) -> Slot:
    async with session_factory() as db:
        return await db.get(Slot, slot_id)


async def confirmed_bookings(session_factory, slot_id: int) -> list[Booking]:
    async with session_factory() as db:
        result = await db.execute(
            select(Booking).where(
                Booking.slot_id == slot_id,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
        )
        return list(result.scalars().all())


async def all_bookings(session_factory, slot_id: int) -> list[Booking]:
    async with session_factory() as db:
        result = await db.execute(select(Booking).where(Booking.slot_id == slot_id))
        return list(result.scalars().all())
