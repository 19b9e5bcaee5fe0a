"""
Pydantic schemas for order and ticket reads.
"""

from datetime import date, datetime, time
from typing import Optional
from pydantic import BaseModel


class TicketResponse(BaseModel):
    ticket_code: str
    ticket_id: int
    valid_date: date
    time_slot: Optional[time] = None
    status: str
    queue_number: Optional[int] = None
    queue_overflow: bool

    model_config = {"from_attributes": True}


class TicketValidationResponse(TicketResponse):
    """Entry-gate read: is this ticket usable today?"""

    valid_today: bool
    expired: bool


class OrderItemResponse(BaseModel):
    id: int
    ticket_id: int
    selected_date: date
    time_slot: Optional[time] = None
    quantity: int
    unit_price: int

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    order_number: str
    status: str
    total: int
    paid_at: Optional[datetime] = None
    tickets_issued_at: Optional[datetime] = None
    items: list[OrderItemResponse]
    tickets: list[TicketResponse]
