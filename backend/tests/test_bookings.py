"""
Tests for the booking endpoints: admission rules in check order.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from slotbook.models import Booking, BookingStatus, SlotStatus
from tests.helpers import confirmed_bookings, fetch_slot, headers_for


@pytest.mark.asyncio
async def test_book_slot(client: AsyncClient, guest, test_slot, session_factory):
    """Successful booking confirms and marks the slot BOOKED."""
    response = await client.post(
        "/api/v1/bookings/",
        json={"slot_id": test_slot.id},
        headers=headers_for(guest),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["slot_id"] == test_slot.id
    assert data["user_id"] == guest.id
    assert data["status"] == "CONFIRMED"

    slot = await fetch_slot(session_factory, test_slot.id)
    assert slot.status == SlotStatus.BOOKED.value


@pytest.mark.asyncio
async def test_book_slot_unauthenticated(client: AsyncClient, test_slot):
    """Missing caller identity returns 401."""
    response = await client.post("/api/v1/bookings/", json={"slot_id": test_slot.id})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_book_slot_unknown_user(client: AsyncClient, test_slot):
    response = await client.post(
        "/api/v1/bookings/",
        json={"slot_id": test_slot.id},
        headers={"X-User-Id": "999999"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_book_missing_slot(client: AsyncClient, guest):
    response = await client.post(
        "/api/v1/bookings/",
        json={"slot_id": 424242},
        headers=headers_for(guest),
    )
    assert response.status_code == 404
    assert response.json()["error"]["reason"] == "SLOT_NOT_FOUND"


@pytest.mark.asyncio
async def test_book_invalid_slot_id(client: AsyncClient, guest):
    response = await client.post(
        "/api/v1/bookings/",
        json={"slot_id": 0},
        headers=headers_for(guest),
    )
    assert response.status_code == 422
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_book_already_booked_slot(client: AsyncClient, make_user, test_slot):
    """Second booking of the same slot returns 409; not idempotent for the winner either."""
    first, second = await make_user(), await make_user()

    response1 = await client.post(
        "/api/v1/bookings/", json={"slot_id": test_slot.id}, headers=headers_for(first)
    )
    assert response1.status_code == 201

    response2 = await client.post(
        "/api/v1/bookings/", json={"slot_id": test_slot.id}, headers=headers_for(second)
    )
    assert response2.status_code == 409
    assert response2.json()["error"]["reason"] == "SLOT_NOT_AVAILABLE"

    repeat = await client.post(
        "/api/v1/bookings/", json={"slot_id": test_slot.id}, headers=headers_for(first)
    )
    assert repeat.status_code == 409


@pytest.mark.asyncio
async def test_book_cancelled_slot(client: AsyncClient, guest, host, make_slot):
    slot = await make_slot(host, status=SlotStatus.CANCELLED)
    response = await client.post(
        "/api/v1/bookings/", json={"slot_id": slot.id}, headers=headers_for(guest)
    )
    assert response.status_code == 409
    assert response.json()["error"]["reason"] == "SLOT_NOT_AVAILABLE"


@pytest.mark.asyncio
async def test_book_past_slot(client: AsyncClient, guest, host, make_slot):
    slot = await make_slot(host, starts_in=timedelta(hours=-2))
    response = await client.post(
        "/api/v1/bookings/", json={"slot_id": slot.id}, headers=headers_for(guest)
    )
    assert response.status_code == 400
    assert response.json()["error"]["reason"] == "SLOT_IN_PAST"


@pytest.mark.asyncio
async def test_book_own_slot(client: AsyncClient, host, test_slot, session_factory):
    response = await client.post(
        "/api/v1/bookings/", json={"slot_id": test_slot.id}, headers=headers_for(host)
    )
    assert response.status_code == 400
    assert response.json()["error"]["reason"] == "BOOKING_OWN_SLOT"

    slot = await fetch_slot(session_factory, test_slot.id)
    assert slot.status == SlotStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_max_active_bookings(client: AsyncClient, guest, make_user, make_slot):
    """The sixth active booking is rejected, whoever hosts it."""
    for _ in range(5):
        other_host = await make_user(roles=("HOST",))
        slot = await make_slot(other_host)
        response = await client.post(
            "/api/v1/bookings/", json={"slot_id": slot.id}, headers=headers_for(guest)
        )
        assert response.status_code == 201

    last_host = await make_user(roles=("HOST",))
    slot = await make_slot(last_host)
    response = await client.post(
        "/api/v1/bookings/", json={"slot_id": slot.id}, headers=headers_for(guest)
    )
    assert response.status_code == 409
    assert response.json()["error"]["reason"] == "MAX_BOOKINGS_REACHED"


@pytest.mark.asyncio
async def test_duplicate_host_booking(client: AsyncClient, guest, host, make_slot, session_factory):
    """A second confirmed booking with the same host is rejected."""
    first = await make_slot(host)
    second = await make_slot(host)

    response1 = await client.post(
        "/api/v1/bookings/", json={"slot_id": first.id}, headers=headers_for(guest)
    )
    assert response1.status_code == 201

    response2 = await client.post(
        "/api/v1/bookings/", json={"slot_id": second.id}, headers=headers_for(guest)
    )
    assert response2.status_code == 409
    assert response2.json()["error"]["reason"] == "DUPLICATE_HOST_BOOKING"
    assert await confirmed_bookings(session_factory, second.id) == []


@pytest.mark.asyncio
async def test_checks_run_in_order(client: AsyncClient, host, make_slot):
    """A booked slot in the past reports unavailability before the time check."""
    slot = await make_slot(host, starts_in=timedelta(hours=-2), status=SlotStatus.BOOKED)
    response = await client.post(
        "/api/v1/bookings/", json={"slot_id": slot.id}, headers=headers_for(host)
    )
    assert response.status_code == 409
    assert response.json()["error"]["reason"] == "SLOT_NOT_AVAILABLE"


@pytest.mark.asyncio
async def test_get_booking(client: AsyncClient, guest, make_user, test_slot):
    created = await client.post(
        "/api/v1/bookings/", json={"slot_id": test_slot.id}, headers=headers_for(guest)
    )
    booking_id = created.json()["id"]

    response = await client.get(f"/api/v1/bookings/{booking_id}", headers=headers_for(guest))
    assert response.status_code == 200
    assert response.json()["id"] == booking_id

    stranger = await make_user()
    response = await client.get(f"/api/v1/bookings/{booking_id}", headers=headers_for(stranger))
    assert response.status_code == 403

    response = await client.get("/api/v1/bookings/999999", headers=headers_for(guest))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_past_bookings_do_not_count_towards_quota(
    client: AsyncClient, guest, make_user, make_slot, session_factory
):
    """Only confirmed bookings on slots that have not started use up the quota."""
    for _ in range(5):
        past_host = await make_user(roles=("HOST",))
        past_slot = await make_slot(past_host, starts_in=timedelta(hours=-2), status=SlotStatus.BOOKED)
        async with session_factory() as db, db.begin():
            db.add(Booking(slot_id=past_slot.id, user_id=guest.id, status=BookingStatus.CONFIRMED.value))

    future_host = await make_user(roles=("HOST",))
    slot = await make_slot(future_host)
    response = await client.post(
        "/api/v1/bookings/", json={"slot_id": slot.id}, headers=headers_for(guest)
    )
    assert response.status_code == 201
    assert len(await confirmed_bookings(session_factory, slot.id)) == 1
