"""
Pydantic schemas for capacity slots.
"""

from datetime import date, time
from typing import Optional
from pydantic import BaseModel, Field


class CapacityGenerate(BaseModel):
    ticket_id: int
    start_date: date
    end_date: date
    total_capacity: Optional[int] = Field(default=None, ge=0)
    time_slots: Optional[list[str]] = None


class CapacityGenerateResponse(BaseModel):
    ticket_id: int
    days: int
    created: int
    skipped: int


class CapacitySlotResponse(BaseModel):
    ticket_id: int
    date: date
    time_slot: Optional[time] = None
    total_capacity: int
    reserved_capacity: int
    sold_capacity: int
    available_capacity: int
    version: int

    model_config = {"from_attributes": True}
