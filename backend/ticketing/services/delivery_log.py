"""
Webhook delivery log and the review flags recorded in it.

webhook_logs doubles as the manual-review queue: rows whose event_type ends
in `_requires_review` are the ones staff must look at.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_review_flag
from ticketing.models.audit import WebhookLog

logger = get_logger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")


async def record_delivery(
    db: AsyncSession,
    order_number: Optional[str],
    event_type: str,
    payload: Optional[dict],
    success: bool = True,
    error_message: Optional[str] = None,
) -> None:
    """Best-effort write to webhook_logs. A failure here never fails the delivery."""
    try:
        db.add(
            WebhookLog(
                order_number=order_number or None,
                event_type=event_type,
                payload=payload,
                success=success,
                error_message=error_message,
            )
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("webhook_log_write_failed", event_type=event_type, error=str(e))


def amount_mismatch(expected_total: int, gross_amount: Any) -> Optional[Decimal]:
    """The received amount when it differs from the expected total, else None."""
    if gross_amount is None:
        return None
    try:
        received = Decimal(str(gross_amount))
    except InvalidOperation:
        logger.warning("gross_amount_unparseable", gross_amount=str(gross_amount))
        return None
    if abs(received - Decimal(expected_total)) > AMOUNT_TOLERANCE:
        return received
    return None


async def flag_for_review(
    db: AsyncSession,
    order_number: str,
    event_type: str,
    details: dict,
    message: str,
) -> None:
    """Put an order on the review queue. Processing of the order continues."""
    record_review_flag(event_type)
    logger.warning(event_type, order_number=order_number, **details)
    await record_delivery(db, order_number, event_type, details, success=True, error_message=message)


async def flag_amount_mismatch(
    db: AsyncSession,
    order_number: str,
    expected_total: int,
    gross_amount: Any,
    notification: dict,
) -> bool:
    received = amount_mismatch(expected_total, gross_amount)
    if received is None:
        return False
    await flag_for_review(
        db,
        order_number,
        "amount_mismatch_requires_review",
        {"expected_total": expected_total, "gross_amount": str(received), "notification": notification},
        f"Amount mismatch: expected {expected_total}, got {received}",
    )
    return True
