"""
Prunable operational tables: webhook delivery log, reservations, stock holds.

Reservations and stock holds are written by the checkout flows; this
service only reads their timestamps to prune them.
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text, func

from ticketing.db.base import Base, TimestampMixin


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(64), nullable=True, index=True)
    event_type = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_webhook_logs_processed_at", "processed_at"),
    )


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="pending")  # pending, confirmed, expired, cancelled
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_reservations_status_expires_at", "status", "expires_at"),
    )


class StockHold(Base):
    __tablename__ = "stock_holds"

    id = Column(Integer, primary_key=True, index=True)
    product_variant_id = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    reserved_until = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
