"""
Order and order item models.

Key design decisions:
- `status` holds the canonical payment status, never the gateway's vocabulary
- `payment_data` is an append-only list of raw gateway payloads (business record,
  kept forever; the prunable delivery log lives in webhook_logs)
- `tickets_issued_at` / `capacity_released_at` / `capacity_finalized_at` mark
  side effects already performed, so redelivery only does what is left
"""

import enum

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, Time, CheckConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    REFUNDED = "refunded"


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    total = Column(Integer, nullable=False, default=0)
    payment_data = Column(JSON, nullable=False, default=list)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    tickets_issued_at = Column(DateTime(timezone=True), nullable=True)
    capacity_released_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'failed', 'expired', 'refunded')",
            name="check_order_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<Order(number={self.order_number}, status={self.status})>"


class OrderItem(Base, TimestampMixin):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    ticket_id = Column(Integer, nullable=False)
    selected_date = Column(Date, nullable=False)
    time_slot = Column(Time, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Integer, nullable=False, default=0)
    capacity_finalized_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_order_item_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, ticket={self.ticket_id}, date={self.selected_date}, qty={self.quantity})>"
