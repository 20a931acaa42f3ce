"""
Slot endpoints: hosts publish and withdraw slots.
"""

from fastapi import APIRouter, Depends, status

from slotbook.api.deps import get_current_user_id
from slotbook.db.session import get_session_factory
from slotbook.schemas.slot import SlotCreate, SlotResponse
from slotbook.services import slot_service

router = APIRouter(prefix="/slots", tags=["Slots"])


@router.post("/", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
async def create_slot(
    slot_data: SlotCreate,
    user_id: int = Depends(get_current_user_id),
):
    """Publish a slot. Requires the HOST role; slots of one host never overlap."""
    return await slot_service.create_slot(
        get_session_factory(), user_id, slot_data.start_time, slot_data.end_time
    )


@router.delete("/{slot_id}", response_model=SlotResponse)
async def cancel_slot(
    slot_id: int,
    user_id: int = Depends(get_current_user_id),
):
    """Withdraw an unbooked slot."""
    return await slot_service.cancel_slot(get_session_factory(), user_id, slot_id)
