"""
Pydantic schemas for booking intents.
"""

from typing import Optional
from pydantic import BaseModel, Field


class BookingIntentCreate(BaseModel):
    ticket_id: int
    ticket_name: str
    ticket_type: str
    price: float = Field(ge=0)
    date: str
    time: str
    quantity: int = Field(gt=0)
    total: float = Field(ge=0)


class BookingIntent(BookingIntentCreate):
    """Stored form; `timestamp` is epoch milliseconds at preserve time."""

    timestamp: int


class BookingIntentResponse(BaseModel):
    intent: Optional[BookingIntent] = None
    age_seconds: Optional[float] = None
