"""
Slot service: hosts publish and withdraw slots.

Overlap is checked here before insert and enforced again by the
slot_no_overlap exclusion constraint, so two concurrent publishes by the same
host cannot both land. An exclusion violation comes back as Conflict
(reason SLOT_OVERLAP).
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook.core.errors import Conflict, Forbidden, InvalidRequest, NotFound
from slotbook.core.logging import get_logger
from slotbook.db.base import utcnow
from slotbook.models.slot import Slot, SlotStatus
from slotbook.models.user import User, UserRole
from slotbook.services.result_mapper import map_storage_error

logger = get_logger(__name__)


async def has_overlap(db: AsyncSession, host_id: int, start_time: datetime, end_time: datetime) -> bool:
    """True when a non-cancelled slot of this host intersects [start_time, end_time)."""
    result = await db.execute(
        select(Slot.id)
        .where(
            Slot.host_id == host_id,
            Slot.status != SlotStatus.CANCELLED.value,
            Slot.start_time < end_time,
            Slot.end_time > start_time,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def create_slot(
    session_factory: async_sessionmaker,
    host_id: int,
    start_time: datetime,
    end_time: datetime,
) -> Slot:
    if end_time <= start_time:
        raise InvalidRequest("End time must be after start time", "INVALID_DATE_RANGE")

    if start_time <= utcnow():
        raise InvalidRequest("Slot start time must be in the future", "SLOT_IN_PAST")

    try:
        async with session_factory() as db:
            async with db.begin():
                host = await db.get(User, host_id)
                if host is None or not host.has_role(UserRole.HOST):
                    raise Forbidden("Only hosts can create slots", "NOT_A_HOST")

                if await has_overlap(db, host_id, start_time, end_time):
                    raise Conflict("Slot overlaps with an existing slot", "SLOT_OVERLAP")

                slot = Slot(
                    host_id=host_id,
                    start_time=start_time,
                    end_time=end_time,
                    status=SlotStatus.AVAILABLE.value,
                )
                db.add(slot)
                await db.flush()
    except DBAPIError as exc:
        raise map_storage_error(exc) from exc

    logger.info("slot_created", slot_id=slot.id, host_id=host_id, start=slot.start_time.isoformat())
    return slot


async def cancel_slot(session_factory: async_sessionmaker, host_id: int, slot_id: int) -> Slot:
    """
    Withdraw an unbooked slot. CANCELLED is terminal; withdrawing twice is a no-op.
    """
    try:
        async with session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(Slot).where(Slot.id == slot_id).with_for_update()
                )
                slot = result.scalar_one_or_none()

                if slot is None:
                    raise NotFound.resource("Slot")

                if slot.host_id != host_id:
                    raise Forbidden("You can only delete your own slots")

                if slot.status == SlotStatus.BOOKED.value:
                    raise Conflict("Cannot delete a booked slot", "SLOT_HAS_BOOKING")

                if slot.status == SlotStatus.AVAILABLE.value:
                    slot.status = SlotStatus.CANCELLED.value
                    await db.flush()
                    logger.info("slot_cancelled", slot_id=slot.id, host_id=host_id)
    except DBAPIError as exc:
        raise map_storage_error(exc) from exc

    return slot
