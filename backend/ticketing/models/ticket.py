"""
Purchased ticket model.

Key design decisions:
- Unique `order_item_id`: issuance is idempotent at the storage layer, one
  ticket per order line item no matter how many webhooks arrive
- Unique (ticket_id, valid_date, time_slot, queue_number): queue numbers can
  never be handed out twice in a session, even by racing reconcilers
- Tickets are never deleted; status moves active -> used / cancelled / expired
"""

import enum

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, Integer, String, Time, UniqueConstraint, CheckConstraint

from ticketing.db.base import Base, TimestampMixin


class TicketStatus(str, enum.Enum):
    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PurchasedTicket(Base, TimestampMixin):
    __tablename__ = "purchased_tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_code = Column(String(40), unique=True, nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    user_id = Column(String(64), nullable=True, index=True)
    ticket_id = Column(Integer, nullable=False)
    valid_date = Column(Date, nullable=False)
    time_slot = Column(Time, nullable=True)
    status = Column(String(20), nullable=False, default=TicketStatus.ACTIVE.value)
    queue_number = Column(Integer, nullable=True)
    queue_overflow = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("order_item_id", name="uq_purchased_ticket_order_item"),
        UniqueConstraint(
            "ticket_id", "valid_date", "time_slot", "queue_number",
            name="uq_purchased_ticket_session_queue",
        ),
        CheckConstraint(
            "status IN ('active', 'used', 'cancelled', 'expired')",
            name="check_purchased_ticket_status",
        ),
        Index("ix_purchased_tickets_status_valid_date", "status", "valid_date"),
    )

    def __repr__(self) -> str:
        return f"<PurchasedTicket(code={self.ticket_code}, status={self.status}, queue={self.queue_number})>"
