"""
Order, ticket and product order read endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.security import get_current_user_id, require_service_token
from ticketing.db.session import get_db
from ticketing.schemas.order import OrderItemResponse, OrderResponse, TicketResponse, TicketValidationResponse
from ticketing.schemas.product import ProductOrderResponse
from ticketing.services.product_order_service import get_product_order_for_user
from ticketing.services.ticket_service import (
    describe_validity,
    get_order_for_user,
    get_order_tickets,
    get_ticket_by_code,
)

orders_router = APIRouter(prefix="/orders", tags=["Orders"])
tickets_router = APIRouter(prefix="/tickets", tags=["Tickets"])
product_orders_router = APIRouter(prefix="/product-orders", tags=["Product Orders"])


@orders_router.get("/{order_number}", response_model=OrderResponse)
async def get_order(
    order_number: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Poll an order's payment status and the tickets issued for it."""
    order = await get_order_for_user(db, order_number, user_id)
    tickets = await get_order_tickets(db, order)
    return OrderResponse(
        order_number=order.order_number,
        status=order.status,
        total=order.total,
        paid_at=order.paid_at,
        tickets_issued_at=order.tickets_issued_at,
        items=[OrderItemResponse.model_validate(item) for item in order.items],
        tickets=[TicketResponse.model_validate(t) for t in tickets],
    )


@tickets_router.get(
    "/{ticket_code}",
    response_model=TicketValidationResponse,
    dependencies=[Depends(require_service_token)],
)
async def get_ticket(
    ticket_code: str,
    db: AsyncSession = Depends(get_db),
):
    """Entry-gate lookup: status, validity and queue position."""
    ticket = await get_ticket_by_code(db, ticket_code)
    return TicketValidationResponse(
        **TicketResponse.model_validate(ticket).model_dump(),
        **describe_validity(ticket),
    )


@product_orders_router.get("/{order_number}", response_model=ProductOrderResponse)
async def get_product_order(
    order_number: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Payment and pickup state of a product order; the pickup code once paid."""
    order = await get_product_order_for_user(db, order_number, user_id)
    return ProductOrderResponse.model_validate(order)
