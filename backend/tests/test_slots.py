"""
Tests for slot publishing and withdrawal.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from slotbook.core.errors import Conflict, InvalidRequest
from slotbook.models import SlotStatus
from slotbook.services import booking_service, slot_service
from tests.helpers import fetch_slot, headers_for


def _window(starts_in: timedelta, hours: int = 1):
    start = datetime.now(timezone.utc).replace(microsecond=0) + starts_in
    return start, start + timedelta(hours=hours)


@pytest.mark.asyncio
async def test_create_slot(client: AsyncClient, host):
    start, end = _window(timedelta(days=2))
    response = await client.post(
        "/api/v1/slots/",
        json={"start_time": start.isoformat(), "end_time": end.isoformat()},
        headers=headers_for(host),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["host_id"] == host.id
    assert data["status"] == "AVAILABLE"


@pytest.mark.asyncio
async def test_create_slot_requires_host(client: AsyncClient, guest):
    start, end = _window(timedelta(days=2))
    response = await client.post(
        "/api/v1/slots/",
        json={"start_time": start.isoformat(), "end_time": end.isoformat()},
        headers=headers_for(guest),
    )
    assert response.status_code == 403
    assert response.json()["error"]["reason"] == "NOT_A_HOST"


@pytest.mark.asyncio
async def test_create_slot_naive_times_rejected(client: AsyncClient, host):
    start, end = _window(timedelta(days=2))
    response = await client.post(
        "/api/v1/slots/",
        json={
            "start_time": start.replace(tzinfo=None).isoformat(),
            "end_time": end.replace(tzinfo=None).isoformat(),
        },
        headers=headers_for(host),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_slot_bad_range(session_factory, host):
    start, _ = _window(timedelta(days=2))
    with pytest.raises(InvalidRequest) as exc_info:
        await slot_service.create_slot(session_factory, host.id, start, start)
    assert exc_info.value.reason == "INVALID_DATE_RANGE"


@pytest.mark.asyncio
async def test_create_slot_in_past(session_factory, host):
    start, end = _window(timedelta(hours=-3))
    with pytest.raises(InvalidRequest) as exc_info:
        await slot_service.create_slot(session_factory, host.id, start, end)
    assert exc_info.value.reason == "SLOT_IN_PAST"


@pytest.mark.asyncio
async def test_overlapping_slot_rejected(session_factory, host, make_user):
    start, end = _window(timedelta(days=3), hours=2)
    await slot_service.create_slot(session_factory, host.id, start, end)

    with pytest.raises(Conflict) as exc_info:
        await slot_service.create_slot(
            session_factory, host.id, start + timedelta(hours=1), end + timedelta(hours=1)
        )
    assert exc_info.value.reason == "SLOT_OVERLAP"

    # Touching intervals do not overlap
    adjacent = await slot_service.create_slot(session_factory, host.id, end, end + timedelta(hours=1))
    assert adjacent.start_time == end

    # Other hosts are unaffected
    other_host = await make_user(roles=("HOST",))
    other = await slot_service.create_slot(session_factory, other_host.id, start, end)
    assert other.host_id == other_host.id


@pytest.mark.asyncio
async def test_cancelled_slot_does_not_block(session_factory, host):
    start, end = _window(timedelta(days=4))
    slot = await slot_service.create_slot(session_factory, host.id, start, end)
    await slot_service.cancel_slot(session_factory, host.id, slot.id)

    replacement = await slot_service.create_slot(session_factory, host.id, start, end)
    assert replacement.id != slot.id


@pytest.mark.asyncio
async def test_cancel_slot(client: AsyncClient, host, test_slot, session_factory):
    response = await client.delete(f"/api/v1/slots/{test_slot.id}", headers=headers_for(host))
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    # Withdrawing twice is a no-op
    response = await client.delete(f"/api/v1/slots/{test_slot.id}", headers=headers_for(host))
    assert response.status_code == 200
    assert (await fetch_slot(session_factory, test_slot.id)).status == SlotStatus.CANCELLED.value


@pytest.mark.asyncio
async def test_cancel_booked_slot(client: AsyncClient, host, guest, test_slot, session_factory):
    await booking_service.book(session_factory, guest.id, test_slot.id)

    response = await client.delete(f"/api/v1/slots/{test_slot.id}", headers=headers_for(host))
    assert response.status_code == 409
    assert response.json()["error"]["reason"] == "SLOT_HAS_BOOKING"


@pytest.mark.asyncio
async def test_cancel_other_hosts_slot(client: AsyncClient, make_user, test_slot):
    other_host = await make_user(roles=("HOST",))
    response = await client.delete(f"/api/v1/slots/{test_slot.id}", headers=headers_for(other_host))
    assert response.status_code == 403

    response = await client.delete("/api/v1/slots/999999", headers=headers_for(other_host))
    assert response.status_code == 404
