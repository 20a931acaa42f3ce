"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    slot_id: int = Field(..., gt=0)


class BookingResponse(BaseModel):
    id: int
    slot_id: int
    user_id: int
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingJob(BaseModel):
    """One booking attempt on the FCFS queue."""

    job_id: str
    caller_id: int
    slot_id: int
    submitted_at_epoch_millis: int


class Rejection(BaseModel):
    code: str
    reason: str
    message: str
    status_code: int


class BookingJobResult(BaseModel):
    job_id: str
    success: bool
    booking: Optional[BookingResponse] = None
    rejection: Optional[Rejection] = None
