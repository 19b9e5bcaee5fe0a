"""
Ticket and order reads, plus the daily expiry sweep.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core import timezone as tz
from ticketing.core.errors import ForbiddenError, NotFoundError
from ticketing.core.logging import get_logger
from ticketing.models.order import Order
from ticketing.models.ticket import PurchasedTicket, TicketStatus

logger = get_logger(__name__)


async def get_order_for_user(db: AsyncSession, order_number: str, user_id: Optional[str]) -> Order:
    order = (
        await db.execute(select(Order).where(Order.order_number == order_number))
    ).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    if user_id is not None and order.user_id != user_id:
        raise ForbiddenError("Not authorized to access this order")
    return order


async def get_order_tickets(db: AsyncSession, order: Order) -> list[PurchasedTicket]:
    item_ids = [item.id for item in order.items]
    if not item_ids:
        return []
    result = await db.execute(
        select(PurchasedTicket)
        .where(PurchasedTicket.order_item_id.in_(item_ids))
        .order_by(PurchasedTicket.id)
    )
    return list(result.scalars().all())


async def get_ticket_by_code(db: AsyncSession, ticket_code: str) -> PurchasedTicket:
    ticket = (
        await db.execute(select(PurchasedTicket).where(PurchasedTicket.ticket_code == ticket_code))
    ).scalar_one_or_none()
    if ticket is None:
        raise NotFoundError("Ticket not found")
    return ticket


def describe_validity(ticket: PurchasedTicket) -> dict:
    """Entry-gate view of a ticket relative to business-local today."""
    today = tz.today()
    expired = ticket.status == TicketStatus.EXPIRED.value or ticket.valid_date < today
    return {
        "valid_today": ticket.status == TicketStatus.ACTIVE.value and ticket.valid_date == today,
        "expired": expired,
    }


async def expire_tickets(db: AsyncSession) -> dict:
    """
    Mark active tickets whose valid date is before business-local today as
    expired. Safe to run any number of times a day.
    """
    today = tz.today()
    rows = await db.execute(
        select(PurchasedTicket.id, PurchasedTicket.ticket_code).where(
            PurchasedTicket.status == TicketStatus.ACTIVE.value,
            PurchasedTicket.valid_date < today,
        )
    )
    expiring = rows.all()
    if not expiring:
        logger.info("ticket_expiry_completed", expired=0, today=str(today))
        return {"expired": 0, "ticket_codes": []}

    await db.execute(
        update(PurchasedTicket)
        .where(
            PurchasedTicket.id.in_([row.id for row in expiring]),
            PurchasedTicket.status == TicketStatus.ACTIVE.value,
        )
        .values(status=TicketStatus.EXPIRED.value, updated_at=tz.utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    codes = [row.ticket_code for row in expiring]
    logger.info("ticket_expiry_completed", expired=len(codes), today=str(today))
    return {"expired": len(codes), "ticket_codes": codes}
