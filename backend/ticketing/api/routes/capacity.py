"""
Capacity slot endpoints.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core import timezone as tz
from ticketing.core.errors import NotFoundError, ValidationError
from ticketing.core.security import require_service_token
from ticketing.db.session import get_db
from ticketing.schemas.capacity import CapacityGenerate, CapacityGenerateResponse, CapacitySlotResponse
from ticketing.services.capacity_service import generate_slots, read_slot

router = APIRouter(prefix="/capacity", tags=["Capacity"])


@router.post(
    "/generate",
    response_model=CapacityGenerateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_service_token)],
)
async def generate_capacity(
    request: CapacityGenerate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create slots for every day in the range and every daily session.
    Safe to re-run over an overlapping range: existing slots are kept as is.
    """
    try:
        return await generate_slots(
            db,
            request.ticket_id,
            request.start_date,
            request.end_date,
            total_capacity=request.total_capacity,
            time_slots=request.time_slots,
        )
    except ValueError as e:
        raise ValidationError(str(e)) from e


@router.get("/{ticket_id}/{slot_date}", response_model=CapacitySlotResponse)
async def get_capacity(
    ticket_id: int,
    slot_date: date,
    time_slot: Optional[str] = Query(default=None, description="HH:MM; omit for the all-day slot"),
    db: AsyncSession = Depends(get_db),
):
    try:
        parsed_slot = tz.parse_time_slot(time_slot)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    slot = await read_slot(db, ticket_id, slot_date, parsed_slot)
    if slot is None:
        raise NotFoundError("Capacity slot not found")
    return slot
