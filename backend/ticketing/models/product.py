"""
Product order models (buy online, pick up in store).

Key design decisions:
- `payment_status` uses the canonical payment vocabulary shared with ticket
  orders, so the same state machine guards both; `status` is the
  fulfilment state shown to staff and customers
- `reserved_stock` is held from checkout until pickup; payment does not
  consume it, a failed or expired payment gives it back once
  (`stock_released_at` marker)
- `pickup_code` doubles as the marker for paid side effects: it is only
  written by the delivery that validated stock and amount
"""

import enum

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin
from ticketing.models.order import OrderStatus


class ProductOrderStatus(str, enum.Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    PROCESSING = "processing"
    REQUIRES_REVIEW = "requires_review"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    COMPLETED = "completed"


class PickupStatus(str, enum.Enum):
    PENDING_PICKUP = "pending_pickup"
    PENDING_REVIEW = "pending_review"
    COMPLETED = "completed"


class ProductVariant(Base, TimestampMixin):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    reserved_stock = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("stock >= 0", name="check_variant_stock_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="check_variant_reserved_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<ProductVariant(id={self.id}, stock={self.stock}, reserved={self.reserved_stock})>"


class ProductOrder(Base, TimestampMixin):
    __tablename__ = "order_products"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=ProductOrderStatus.AWAITING_PAYMENT.value)
    payment_status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    total = Column(Integer, nullable=False, default=0)
    payment_data = Column(JSON, nullable=False, default=list)
    pickup_code = Column(String(16), unique=True, nullable=True)
    pickup_status = Column(String(20), nullable=True)
    pickup_expires_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    stock_released_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "ProductOrderItem",
        back_populates="order",
        lazy="selectin",
        order_by="ProductOrderItem.id",
    )

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'expired', 'refunded')",
            name="check_product_order_payment_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<ProductOrder(number={self.order_number}, status={self.status}, payment={self.payment_status})>"


class ProductOrderItem(Base, TimestampMixin):
    __tablename__ = "order_product_items"

    id = Column(Integer, primary_key=True, index=True)
    order_product_id = Column(Integer, ForeignKey("order_products.id"), nullable=False, index=True)
    product_variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Integer, nullable=False, default=0)

    order = relationship("ProductOrder", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_product_item_quantity_positive"),
    )
