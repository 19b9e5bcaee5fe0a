"""
Queue numbering for paid tickets within a session bucket.

Numbers are dense, start at 1, follow ticket creation order (ties broken by
id) and are never reassigned. The bucket's capacity row is locked with
SELECT ... FOR UPDATE and the current maximum is read inside that same
transaction, so two reconcilers numbering the same session serialize on
the lock. The unique index on (ticket_id, valid_date, time_slot,
queue_number) rejects any duplicate that slips through, e.g. a bucket with
no capacity row to lock.

Tickets numbered beyond the bucket's total_capacity are still issued; they
are flagged with queue_overflow for staff.
"""

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core import timezone as tz
from ticketing.core.logging import get_logger
from ticketing.core.metrics import queue_overflow_tickets
from ticketing.models.capacity import CapacitySlot
from ticketing.models.ticket import PurchasedTicket
from ticketing.services.capacity_service import slot_filter

logger = get_logger(__name__)


def _bucket_where(ticket_id: int, valid_date: date, time_slot):
    return (
        PurchasedTicket.ticket_id == ticket_id,
        PurchasedTicket.valid_date == valid_date,
        slot_filter(PurchasedTicket.time_slot, time_slot),
    )


async def assign_queue_numbers(
    db: AsyncSession,
    ticket_id: int,
    valid_date: date,
    time_slot,
) -> list[PurchasedTicket]:
    """Number every ticket in the bucket that has no queue number yet. Caller commits."""
    time_slot = tz.parse_time_slot(time_slot)
    if time_slot is None:
        # All-day tickets have no session queue
        return []

    capacity_row = await db.execute(
        select(CapacitySlot.total_capacity)
        .where(
            CapacitySlot.ticket_id == ticket_id,
            CapacitySlot.date == valid_date,
            slot_filter(CapacitySlot.time_slot, time_slot),
        )
        .with_for_update()
    )
    total_capacity = capacity_row.scalar_one_or_none()

    current_max = (
        await db.execute(
            select(func.coalesce(func.max(PurchasedTicket.queue_number), 0)).where(
                *_bucket_where(ticket_id, valid_date, time_slot),
                PurchasedTicket.queue_number.is_not(None),
            )
        )
    ).scalar_one()

    unnumbered = (
        await db.execute(
            select(PurchasedTicket)
            .where(
                *_bucket_where(ticket_id, valid_date, time_slot),
                PurchasedTicket.queue_number.is_(None),
            )
            .order_by(PurchasedTicket.created_at.asc(), PurchasedTicket.id.asc())
            .with_for_update()
        )
    ).scalars().all()

    for number, ticket in enumerate(unnumbered, start=current_max + 1):
        ticket.queue_number = number
        ticket.queue_overflow = total_capacity is not None and number > total_capacity
        if ticket.queue_overflow:
            queue_overflow_tickets.inc()

    if unnumbered:
        await db.flush()
        logger.info(
            "queue_numbers_assigned",
            ticket_id=ticket_id,
            valid_date=str(valid_date),
            time_slot=str(time_slot),
            first=current_max + 1,
            last=current_max + len(unnumbered),
            overflow=sum(1 for t in unnumbered if t.queue_overflow),
        )
    return list(unnumbered)
