"""
Booking service: the admission transaction that decides who gets a slot.

CONCURRENCY STRATEGY: Pessimistic Row Lock + Storage Backstop
==============================================================

Problem:
  Twenty guests press "book" on the same slot within a few milliseconds.
  Every one of them reads status=AVAILABLE, every one inserts a booking.
  Result: one slot, twenty confirmations.

Solution (three independent layers, each sufficient on its own):

  1. Row lock: SELECT ... FROM slots WHERE id = :slot_id FOR UPDATE inside a
     SERIALIZABLE transaction. The first transaction to take the lock is the
     only one that proceeds; the others block on that row (other slots never
     block) and, once the winner commits, re-read status=BOOKED.
  2. Application check: status must be AVAILABLE, otherwise Conflict.
  3. Storage backstop: the partial unique index
     unique_confirmed_booking_per_slot rejects a second CONFIRMED row for the
     same slot. The unique violation is mapped to the same Conflict.

  If PostgreSQL reports a serialization failure or deadlock instead of
  blocking, the whole transaction runs once more against fresh state; a second
  failure is reported as Conflict. Nothing else is retried here.

  Tie-break: whoever acquires the lock first wins. That is not necessarily
  network arrival order; strict FCFS is the booking queue's job.

Checks run strictly in this order and fail fast:
  lock -> exists -> AVAILABLE -> in the future -> not own slot
  -> below MAX_ACTIVE_BOOKINGS -> no other confirmed booking with this host
  -> mark BOOKED + insert CONFIRMED booking -> commit
"""

import time
from datetime import timedelta

from sqlalchemy import select, func
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook.core.config import get_settings
from slotbook.core.errors import AdmissionError, Conflict, Forbidden, InvalidRequest, NotFound
from slotbook.core.logging import get_logger
from slotbook.core.metrics import admission_latency, db_retries, record_booking_attempt, record_cancellation
from slotbook.db.base import utcnow
from slotbook.models.booking import Booking, BookingStatus
from slotbook.models.slot import Slot, SlotStatus
from slotbook.services.result_mapper import (
    DEADLOCK,
    LOCK_NOT_AVAILABLE,
    SERIALIZATION_FAILURE,
    UNIQUE_VIOLATION,
    is_transient,
    map_storage_error,
)

logger = get_logger(__name__)

# The only unique constraint the admission insert can hit is
# unique_confirmed_booking_per_slot: someone else holds the slot.
ADMISSION_OUTCOMES = {
    UNIQUE_VIOLATION: ("SLOT_NOT_AVAILABLE", "Slot is no longer available"),
    SERIALIZATION_FAILURE: ("TRANSACTION_CONFLICT", "Slot is no longer available"),
    DEADLOCK: ("TRANSACTION_CONFLICT", "Slot is no longer available"),
    LOCK_NOT_AVAILABLE: ("TRANSACTION_CONFLICT", "Slot is no longer available"),
}


async def _begin_isolated(db: AsyncSession, isolation_level: str) -> None:
    # SQLite already holds the whole database from BEGIN IMMEDIATE
    if db.get_bind().dialect.name != "sqlite":
        await db.connection(execution_options={"isolation_level": isolation_level})


async def _count_active_bookings(db: AsyncSession, user_id: int, now) -> int:
    """Confirmed bookings whose slot has not started yet."""
    result = await db.execute(
        select(func.count(Booking.id))
        .join(Slot, Booking.slot_id == Slot.id)
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Slot.start_time > now,
        )
    )
    return result.scalar_one()


async def _count_bookings_with_host(db: AsyncSession, user_id: int, host_id: int) -> int:
    result = await db.execute(
        select(func.count(Booking.id))
        .join(Slot, Booking.slot_id == Slot.id)
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Slot.host_id == host_id,
        )
    )
    return result.scalar_one()


async def _admit(session_factory: async_sessionmaker, user_id: int, slot_id: int) -> Booking:
    settings = get_settings()

    async with session_factory() as db:
        async with db.begin():
            await _begin_isolated(db, settings.ADMISSION_ISOLATION_LEVEL)

            # Step 1: lock the slot row; concurrent bookers of this slot wait here
            result = await db.execute(
                select(Slot).where(Slot.id == slot_id).with_for_update()
            )
            slot = result.scalar_one_or_none()

            if slot is None:
                raise NotFound.resource("Slot")

            if slot.status != SlotStatus.AVAILABLE.value:
                raise Conflict("Slot is no longer available", "SLOT_NOT_AVAILABLE")

            now = utcnow()
            if slot.start_time <= now:
                raise InvalidRequest("Cannot book a slot in the past", "SLOT_IN_PAST")

            if slot.host_id == user_id:
                raise InvalidRequest("You cannot book your own slot", "BOOKING_OWN_SLOT")

            active = await _count_active_bookings(db, user_id, now)
            if active >= settings.MAX_ACTIVE_BOOKINGS:
                raise Conflict(
                    f"You have reached the maximum of {settings.MAX_ACTIVE_BOOKINGS} active bookings",
                    "MAX_BOOKINGS_REACHED",
                )

            if await _count_bookings_with_host(db, user_id, slot.host_id) > 0:
                raise Conflict(
                    "You already have an active booking with this host",
                    "DUPLICATE_HOST_BOOKING",
                )

            slot.status = SlotStatus.BOOKED.value
            booking = Booking(
                slot_id=slot.id,
                user_id=user_id,
                status=BookingStatus.CONFIRMED.value,
            )
            db.add(booking)
            await db.flush()

        return booking


async def book(session_factory: async_sessionmaker, user_id: int, slot_id: int) -> Booking:
    """
    Reserve a slot for a user.

    Returns the CONFIRMED booking or raises an AdmissionError
    (NotFound, Conflict, InvalidRequest, Internal).
    """
    settings = get_settings()
    attempts = 1 + max(0, settings.ADMISSION_SERIALIZATION_RETRIES)
    start_time = time.perf_counter()

    try:
        for attempt in range(1, attempts + 1):
            try:
                booking = await _admit(session_factory, user_id, slot_id)
            except DBAPIError as exc:
                if is_transient(exc) and attempt < attempts:
                    db_retries.inc()
                    logger.info(
                        "booking_retry",
                        slot_id=slot_id,
                        user_id=user_id,
                        attempt=attempt,
                        reason="serialization_conflict",
                    )
                    continue
                raise map_storage_error(exc, ADMISSION_OUTCOMES) from exc

            record_booking_attempt("success")
            logger.info(
                "booking_created",
                booking_id=booking.id,
                slot_id=slot_id,
                user_id=user_id,
                attempt=attempt,
            )
            return booking
    except AdmissionError as exc:
        record_booking_attempt(exc.code.lower())
        logger.info(
            "booking_rejected",
            slot_id=slot_id,
            user_id=user_id,
            code=exc.code,
            reason=exc.reason,
        )
        raise
    finally:
        admission_latency.observe(time.perf_counter() - start_time)

    # Unreachable: the last attempt either returns or raises
    raise AssertionError("admission loop exited without an outcome")


async def cancel(session_factory: async_sessionmaker, user_id: int, booking_id: int) -> Booking:
    """
    Cancel a booking and make its slot bookable again.

    Only the owner may cancel, and only more than CANCELLATION_WINDOW_HOURS
    before the slot starts. The booking row is locked so two cancels of the
    same booking cannot both flip a slot that someone has re-booked meanwhile.
    """
    settings = get_settings()

    try:
        async with session_factory() as db:
            async with db.begin():
                await _begin_isolated(db, settings.ADMISSION_ISOLATION_LEVEL)

                result = await db.execute(
                    select(Booking).where(Booking.id == booking_id).with_for_update()
                )
                booking = result.scalar_one_or_none()

                if booking is None:
                    raise NotFound.resource("Booking")

                if booking.user_id != user_id:
                    raise Forbidden("You can only cancel your own bookings")

                if booking.status == BookingStatus.CANCELLED.value:
                    raise Conflict("Booking is already cancelled", "ALREADY_CANCELLED")

                slot = await db.get(Slot, booking.slot_id)
                window = timedelta(hours=settings.CANCELLATION_WINDOW_HOURS)
                if slot.start_time - utcnow() <= window:
                    raise InvalidRequest(
                        f"Cancellation is only allowed more than {settings.CANCELLATION_WINDOW_HOURS} "
                        "hour(s) before the slot start time",
                        "CANCELLATION_NOT_ALLOWED",
                    )

                booking.status = BookingStatus.CANCELLED.value
                slot.status = SlotStatus.AVAILABLE.value
                await db.flush()
    except DBAPIError as exc:
        error = map_storage_error(exc)
        record_cancellation(error.code.lower())
        raise error from exc
    except AdmissionError as exc:
        record_cancellation(exc.code.lower())
        logger.info("cancellation_rejected", booking_id=booking_id, user_id=user_id, reason=exc.reason)
        raise

    record_cancellation("success")
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        slot_id=booking.slot_id,
        user_id=user_id,
    )
    return booking


async def get_booking(db: AsyncSession, user_id: int, booking_id: int) -> Booking:
    """Get a booking; users can only view their own."""
    booking = await db.get(Booking, booking_id)

    if booking is None:
        raise NotFound.resource("Booking")

    if booking.user_id != user_id:
        raise Forbidden("You can only view your own bookings")

    return booking
