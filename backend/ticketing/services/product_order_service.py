"""
Product order reconciliation: payment side effects for pickup orders.

Notifications for product orders go through the same signature check,
status mapping and status-guarded transition as ticket orders. What a
payment triggers is different:

  paid            validate stock and amount, then issue a pickup code valid
                  for PICKUP_CODE_TTL_DAYS. A shortfall or amount mismatch
                  sends the order to requires_review / pending_review.
  failed, expired give the reserved stock back.

Markers:
  order_products.pickup_code        paid side effects done
  order_products.stock_released_at  reservation returned
Both are written by conditional UPDATEs, so only one delivery performs each
side effect no matter how many arrive.
"""

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ticketing.core import timezone as tz
from ticketing.core.config import get_settings
from ticketing.core.errors import ForbiddenError, NotFoundError
from ticketing.core.logging import get_logger
from ticketing.models.order import OrderStatus
from ticketing.models.product import (
    PickupStatus,
    ProductOrder,
    ProductOrderItem,
    ProductOrderStatus,
    ProductVariant,
)
from ticketing.services.delivery_log import amount_mismatch, flag_amount_mismatch, flag_for_review
from ticketing.services.payment_status import can_transition

logger = get_logger(__name__)

PICKUP_CODE_ATTEMPTS = 5

FULFILMENT_STATUS = {
    OrderStatus.PAID: ProductOrderStatus.PROCESSING,
    OrderStatus.FAILED: ProductOrderStatus.CANCELLED,
    OrderStatus.EXPIRED: ProductOrderStatus.EXPIRED,
    OrderStatus.REFUNDED: ProductOrderStatus.REFUNDED,
}


@dataclass
class FulfilmentResult:
    pickup_code: Optional[str] = None
    pickup_status: Optional[str] = None
    status: Optional[str] = None
    stock_issues: list[str] = field(default_factory=list)
    amount_mismatch: bool = False
    already_done: bool = False


def generate_pickup_code() -> str:
    """PRX-XXX-XXX with uppercase hex groups."""
    return f"PRX-{uuid.uuid4().hex[:3].upper()}-{uuid.uuid4().hex[:3].upper()}"


async def load_product_order(db: AsyncSession, order_number: str) -> Optional[ProductOrder]:
    result = await db.execute(
        select(ProductOrder)
        .where(ProductOrder.order_number == order_number)
        .options(selectinload(ProductOrder.items))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_product_order_for_user(db: AsyncSession, order_number: str, user_id: Optional[str]) -> ProductOrder:
    order = await load_product_order(db, order_number)
    if order is None:
        raise NotFoundError("Order not found")
    if user_id is not None and order.user_id != user_id:
        raise ForbiddenError("Not authorized to access this order")
    return order


async def apply_product_transition(
    db: AsyncSession,
    order: ProductOrder,
    previous: OrderStatus,
    new_status: OrderStatus,
    payload: dict,
) -> bool:
    if not can_transition(previous, new_status):
        logger.info("transition_ignored", current=previous.value, requested=new_status.value)
        return False

    now = tz.utcnow()
    values = {
        "payment_status": new_status.value,
        "payment_data": [*(order.payment_data or []), payload],
        "updated_at": now,
    }
    fulfilment = FULFILMENT_STATUS.get(new_status)
    if fulfilment is not None:
        values["status"] = fulfilment.value
    if new_status == OrderStatus.PAID:
        values["paid_at"] = now
    elif new_status == OrderStatus.EXPIRED:
        values["expired_at"] = now

    result = await db.execute(
        update(ProductOrder)
        .where(ProductOrder.id == order.id, ProductOrder.payment_status == previous.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info("transition_lost_race", expected=previous.value, requested=new_status.value)
        return False
    return True


async def _stock_issues(db: AsyncSession, order_id: int) -> list[str]:
    """Lines whose variant no longer holds enough reserved or physical stock."""
    rows = await db.execute(
        select(
            ProductOrderItem.product_variant_id,
            ProductOrderItem.quantity,
            ProductVariant.stock,
            ProductVariant.reserved_stock,
        )
        .join(ProductVariant, ProductVariant.id == ProductOrderItem.product_variant_id)
        .where(ProductOrderItem.order_product_id == order_id)
        .order_by(ProductOrderItem.id)
    )
    issues = []
    for variant_id, quantity, stock, reserved in rows:
        if reserved < quantity:
            issues.append(f"Variant {variant_id}: reserved={reserved}, needed={quantity}")
        if stock < quantity:
            issues.append(f"Variant {variant_id}: stock={stock}, needed={quantity}")
    return issues


async def finalize_product_payment(
    db: AsyncSession,
    order_id: int,
    order_number: str,
    total: int,
    gross_amount: Any,
    notification: dict,
) -> FulfilmentResult:
    """
    Paid side effects for a product order. The delivery whose UPDATE writes
    the pickup code owns them; every other delivery gets the stored result.
    """
    issues = await _stock_issues(db, order_id)
    mismatch = amount_mismatch(total, gross_amount) is not None
    needs_review = bool(issues) or mismatch
    status = ProductOrderStatus.REQUIRES_REVIEW if needs_review else ProductOrderStatus.PROCESSING
    pickup_status = PickupStatus.PENDING_REVIEW if needs_review else PickupStatus.PENDING_PICKUP
    now = tz.utcnow()
    expires_at = now + timedelta(days=get_settings().PICKUP_CODE_TTL_DAYS)

    for attempt in range(1, PICKUP_CODE_ATTEMPTS + 1):
        code = generate_pickup_code()
        try:
            claim = await db.execute(
                update(ProductOrder)
                .where(
                    ProductOrder.id == order_id,
                    ProductOrder.pickup_code.is_(None),
                    ProductOrder.payment_status == OrderStatus.PAID.value,
                )
                .values(
                    pickup_code=code,
                    pickup_status=pickup_status.value,
                    pickup_expires_at=expires_at,
                    status=status.value,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            break
        except IntegrityError:
            # Pickup codes are unique; draw again
            await db.rollback()
            logger.info("pickup_code_collision", attempt=attempt)
            if attempt == PICKUP_CODE_ATTEMPTS:
                raise

    if claim.rowcount == 0:
        current = await load_product_order(db, order_number)
        return FulfilmentResult(
            pickup_code=current.pickup_code,
            pickup_status=current.pickup_status,
            status=current.status,
            already_done=True,
        )

    if issues:
        await flag_for_review(
            db,
            order_number,
            "stock_validation_failed_requires_review",
            {"order_id": order_number, "stock_issues": issues, "payment_completed_at": now.isoformat()},
            f"Stock insufficient: {'; '.join(issues)}",
        )
    if mismatch:
        await flag_amount_mismatch(db, order_number, total, gross_amount, notification)

    logger.info("pickup_code_issued", status=status.value, pickup_status=pickup_status.value)
    return FulfilmentResult(
        pickup_code=code,
        pickup_status=pickup_status.value,
        status=status.value,
        stock_issues=issues,
        amount_mismatch=mismatch,
    )


async def release_product_stock(db: AsyncSession, order_id: int, order_number: str) -> bool:
    """Give back the reserved stock of a never-paid product order, once."""
    now = tz.utcnow()
    claim = await db.execute(
        update(ProductOrder)
        .where(ProductOrder.id == order_id, ProductOrder.stock_released_at.is_(None))
        .values(stock_released_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount == 0:
        await db.rollback()
        return False

    rows = await db.execute(
        select(ProductOrderItem.product_variant_id, func.sum(ProductOrderItem.quantity))
        .where(ProductOrderItem.order_product_id == order_id)
        .group_by(ProductOrderItem.product_variant_id)
    )
    quantities = rows.all()
    for variant_id, quantity in quantities:
        await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(
                reserved_stock=case(
                    (ProductVariant.reserved_stock > quantity, ProductVariant.reserved_stock - quantity),
                    else_=0,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
    await db.commit()
    logger.info("product_stock_released", order_number=order_number, variants=len(quantities))
    return True
