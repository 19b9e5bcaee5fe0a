"""
Payment gateway endpoints: inbound notifications and manual status sync.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import DomainError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_webhook
from ticketing.core.security import get_current_user_id
from ticketing.db.session import get_db
from ticketing.schemas.payment import PaymentNotification, SyncRequest, WebhookResponse
from ticketing.services.delivery_log import record_delivery
from ticketing.services.gateway import GatewayClient, get_gateway_client
from ticketing.services.product_order_service import get_product_order_for_user, load_product_order
from ticketing.services.reconciliation_service import handle_notification
from ticketing.services.ticket_service import get_order_for_user

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])


async def _reconcile(db: AsyncSession, payload: dict, verify_signature: bool):
    try:
        result = await handle_notification(db, payload, verify_signature=verify_signature)
    except DomainError:
        raise
    except Exception as e:
        await db.rollback()
        record_webhook("error")
        logger.exception("webhook_processing_failed", order_number=payload.get("order_id"))
        await record_delivery(db, payload.get("order_id"), "exception", payload, success=False, error_message=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "detail": "Internal error"},
        )
    return {"success": True, "results": result.as_dict()}


@router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    notification: PaymentNotification,
    db: AsyncSession = Depends(get_db),
):
    """
    Gateway notification endpoint.

    Duplicate and out-of-order deliveries are answered with 200 so the
    gateway stops retrying. A bad signature is rejected with 401 and changes
    nothing.
    """
    payload = notification.model_dump(exclude_unset=True)
    return await _reconcile(db, payload, verify_signature=True)


@router.post("/sync", response_model=WebhookResponse)
async def sync_payment_status(
    request: SyncRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: GatewayClient = Depends(get_gateway_client),
):
    """
    Pull the order's status from the gateway and reconcile it.

    Fallback for clients whose order is stuck in pending because a
    notification never arrived.
    """
    if await load_product_order(db, request.order_number) is not None:
        await get_product_order_for_user(db, request.order_number, user_id)
    else:
        await get_order_for_user(db, request.order_number, user_id)
    payload = await gateway.get_status(request.order_number)
    payload.setdefault("order_id", request.order_number)
    logger.info(
        "payment_sync_requested",
        order_number=request.order_number,
        transaction_status=payload.get("transaction_status"),
    )
    return await _reconcile(db, payload, verify_signature=False)
