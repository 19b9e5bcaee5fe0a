"""Initial schema: capacity slots, orders, tickets and prunable operational tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Capacity slots table
    op.create_table(
        "capacity_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.Time(), nullable=True),
        sa.Column("total_capacity", sa.Integer(), nullable=False),
        sa.Column("reserved_capacity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sold_capacity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.UniqueConstraint("ticket_id", "date", "time_slot", name="uq_capacity_slot"),
        sa.CheckConstraint("total_capacity >= 0", name="check_total_capacity_non_negative"),
        sa.CheckConstraint("reserved_capacity >= 0", name="check_reserved_capacity_non_negative"),
        sa.CheckConstraint("sold_capacity >= 0", name="check_sold_capacity_non_negative"),
    )
    op.create_index("ix_capacity_slots_id", "capacity_slots", ["id"])
    # Every CAS read and every availability lookup filters on
    # (ticket_id, date); the unique constraint covers equality on all three
    # columns, this one also serves range scans over dates.
    op.create_index("ix_capacity_slots_ticket_date", "capacity_slots", ["ticket_id", "date"])

    # Orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_data", sa.JSON(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tickets_issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("capacity_released_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'paid', 'failed', 'expired', 'refunded')",
            name="check_order_status",
        ),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_user_id", "orders", ["user_id"])

    # Order items table
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("selected_date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.Time(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("capacity_finalized_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_order_item_quantity_positive"),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"])
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    # Purchased tickets table
    op.create_table(
        "purchased_tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_code", sa.String(40), nullable=False),
        sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("valid_date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.Time(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("queue_number", sa.Integer(), nullable=True),
        sa.Column("queue_overflow", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        # ONE TICKET PER ORDER ITEM: the idempotency key for issuance.
        # Two reconcilers racing on the same paid order cannot both insert.
        sa.UniqueConstraint("order_item_id", name="uq_purchased_ticket_order_item"),
        # Queue numbers are unique within a session bucket. NULL time slots
        # (all-day) and NULL queue numbers never collide.
        sa.UniqueConstraint(
            "ticket_id", "valid_date", "time_slot", "queue_number",
            name="uq_purchased_ticket_session_queue",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'used', 'cancelled', 'expired')",
            name="check_purchased_ticket_status",
        ),
    )
    op.create_index("ix_purchased_tickets_id", "purchased_tickets", ["id"])
    op.create_index("ix_purchased_tickets_ticket_code", "purchased_tickets", ["ticket_code"], unique=True)
    op.create_index("ix_purchased_tickets_user_id", "purchased_tickets", ["user_id"])
    # The daily expiry sweep scans WHERE status = 'active' AND valid_date < today
    op.create_index("ix_purchased_tickets_status_valid_date", "purchased_tickets", ["status", "valid_date"])

    # Webhook delivery log (pruned after RETENTION_WEBHOOK_LOGS_DAYS)
    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(64), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_webhook_logs_id", "webhook_logs", ["id"])
    op.create_index("ix_webhook_logs_order_number", "webhook_logs", ["order_number"])
    op.create_index("ix_webhook_logs_processed_at", "webhook_logs", ["processed_at"])

    # Reservations table
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_status_expires_at", "reservations", ["status", "expires_at"])

    # Stock holds table
    op.create_table(
        "stock_holds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_variant_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("reserved_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_stock_holds_id", "stock_holds", ["id"])
    op.create_index("ix_stock_holds_reserved_until", "stock_holds", ["reserved_until"])


def downgrade() -> None:
    op.drop_table("stock_holds")
    op.drop_table("reservations")
    op.drop_table("webhook_logs")
    op.drop_table("purchased_tickets")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("capacity_slots")
