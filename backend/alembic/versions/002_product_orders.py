"""Product (pickup) orders: variants with reserved stock, orders and their items.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Product variants table
    op.create_table(
        "product_variants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reserved_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("stock >= 0", name="check_variant_stock_non_negative"),
        sa.CheckConstraint("reserved_stock >= 0", name="check_variant_reserved_non_negative"),
    )
    op.create_index("ix_product_variants_id", "product_variants", ["id"])
    op.create_index("ix_product_variants_product_id", "product_variants", ["product_id"])

    # Product orders table
    op.create_table(
        "order_products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="awaiting_payment"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_data", sa.JSON(), nullable=False),
        sa.Column("pickup_code", sa.String(16), nullable=True),
        sa.Column("pickup_status", sa.String(20), nullable=True),
        sa.Column("pickup_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stock_released_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        # Written once by the delivery that wins the paid side effects
        sa.UniqueConstraint("pickup_code", name="uq_order_products_pickup_code"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'expired', 'refunded')",
            name="check_product_order_payment_status",
        ),
    )
    op.create_index("ix_order_products_id", "order_products", ["id"])
    op.create_index("ix_order_products_order_number", "order_products", ["order_number"], unique=True)
    op.create_index("ix_order_products_user_id", "order_products", ["user_id"])

    # Product order items table
    op.create_table(
        "order_product_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_product_id", sa.Integer(), sa.ForeignKey("order_products.id"), nullable=False),
        sa.Column("product_variant_id", sa.Integer(), sa.ForeignKey("product_variants.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_product_item_quantity_positive"),
    )
    op.create_index("ix_order_product_items_id", "order_product_items", ["id"])
    op.create_index("ix_order_product_items_order_product_id", "order_product_items", ["order_product_id"])


def downgrade() -> None:
    op.drop_table("order_product_items")
    op.drop_table("order_products")
    op.drop_table("product_variants")
