"""
Pydantic schemas for slot publishing.
"""

from datetime import datetime

from pydantic import BaseModel, model_validator


class SlotCreate(BaseModel):
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def _require_timezone(self) -> "SlotCreate":
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            raise ValueError("start_time and end_time must include a timezone offset")
        return self


class SlotResponse(BaseModel):
    id: int
    host_id: int
    start_time: datetime
    end_time: datetime
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
