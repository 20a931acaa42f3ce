"""
Tests for request dependencies: caller identity.
"""

import pytest
from httpx import AsyncClient

from slotbook.api.deps import get_current_user
from slotbook.core.errors import Unauthorized
from tests.helpers import headers_for


@pytest.mark.asyncio
async def test_current_user_usable_after_session_released(session_factory, guest):
    """The resolved user keeps its loaded attributes once the read transaction ends."""
    async with session_factory() as db:
        user = await get_current_user(x_user_id=str(guest.id), db=db)

    assert user.id == guest.id
    assert user.roles == ["GUEST"]
    assert not user.is_host


@pytest.mark.asyncio
@pytest.mark.parametrize("header", [None, "", "abc", "424242"])
async def test_current_user_rejected(session_factory, header):
    async with session_factory() as db:
        with pytest.raises(Unauthorized):
            await get_current_user(x_user_id=header, db=db)


@pytest.mark.asyncio
async def test_authenticated_booking_request(client: AsyncClient, guest, test_slot):
    response = await client.post(
        "/api/v1/bookings/", json={"slot_id": test_slot.id}, headers=headers_for(guest)
    )
    assert response.status_code == 201
    assert response.json()["user_id"] == guest.id
    assert response.headers["X-RateLimit-Remaining"] == "9"
