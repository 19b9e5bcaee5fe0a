"""
Webhook reconciler: turns gateway notifications into order state, tickets,
queue numbers and sold capacity.

IDEMPOTENCY STRATEGY: Persistent step markers
=============================================

Problem:
  The gateway delivers at least once, possibly out of order, possibly to
  several workers at the same moment. A naive handler issues tickets twice,
  counts capacity twice, or lets a stale "pending" overwrite "paid".

Solution:
  1. The status change is a conditional UPDATE guarded by the status we
     read (WHERE status = :previous). Only one delivery wins each
     transition; disallowed transitions (paid -> pending, expired -> paid)
     are ignored, not errors.
  2. Side effects are keyed by markers stored with the order:
       purchased_tickets.order_item_id (unique)   one ticket per line item
       order_items.capacity_finalized_at          hold turned into a sale
       orders.tickets_issued_at                   issuance complete
       orders.capacity_released_at                reservation given back
     Each marker is committed together with the work it marks, so a
     delivery arriving after a crash performs only the remaining steps.

Product orders share the order_id namespace and are looked up first; their
payment side effects live in product_order_service.
"""

import secrets
import string
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ticketing.core import timezone as tz
from ticketing.core.config import get_settings
from ticketing.core.errors import AuthenticationError, NotFoundError, ValidationError
from ticketing.core.logging import get_logger, order_log_context
from ticketing.core.metrics import reconciliation_latency, record_webhook, tickets_issued
from ticketing.models.order import Order, OrderItem, OrderStatus
from ticketing.models.product import ProductOrder
from ticketing.models.ticket import PurchasedTicket, TicketStatus
from ticketing.services import capacity_service, product_order_service
from ticketing.services.delivery_log import flag_amount_mismatch, record_delivery
from ticketing.services.gateway import verify_signature as signature_matches
from ticketing.services.payment_status import can_transition, map_status
from ticketing.services.product_order_service import FulfilmentResult
from ticketing.services.queue_service import assign_queue_numbers

logger = get_logger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase

TICKET_INSERT_ATTEMPTS = 3
QUEUE_ASSIGN_ATTEMPTS = 3


@dataclass
class IssuanceResult:
    tickets_created: int = 0
    tickets_existing: int = 0
    queue_numbered: int = 0
    capacity_applied: int = 0
    capacity_dropped: int = 0
    converted_to_allday: list[str] = field(default_factory=list)
    skipped: bool = False


@dataclass
class ReconciliationResult:
    order_number: str
    previous_status: str
    mapped_status: str
    status: str
    transition_applied: bool
    issuance: Optional[IssuanceResult] = None
    capacity_released: bool = False
    kind: str = "ticket"
    fulfilment: Optional[FulfilmentResult] = None
    stock_released: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class _ItemPlan:
    """Plain-value snapshot of an order item; survives session rollbacks."""

    item_id: int
    ticket_id: int
    selected_date: Any
    time_slot: Any
    quantity: int
    capacity_finalized: bool


def _base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            return "".join(reversed(digits))


def generate_ticket_code() -> str:
    """TKT-<8 random alphanumerics>-<base36 milliseconds>."""
    random_part = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(8))
    return f"TKT-{random_part}-{_base36(int(time.time() * 1000))}"


async def _load_order(db: AsyncSession, order_number: str) -> Optional[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.order_number == order_number)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _apply_transition(
    db: AsyncSession,
    order: Order,
    previous: OrderStatus,
    new_status: OrderStatus,
    payload: dict,
) -> bool:
    if not can_transition(previous, new_status):
        logger.info("transition_ignored", current=previous.value, requested=new_status.value)
        return False

    now = tz.utcnow()
    values = {
        "status": new_status.value,
        "payment_data": [*(order.payment_data or []), payload],
        "updated_at": now,
    }
    if new_status == OrderStatus.PAID:
        values["paid_at"] = now

    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == previous.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Another delivery moved the order first; it owns this transition
        logger.info("transition_lost_race", expected=previous.value, requested=new_status.value)
        return False
    return True


def _session_end(selected_date, time_slot):
    if time_slot is None:
        return None
    start = tz.combine(selected_date, time_slot)
    return tz.add_minutes(start, get_settings().SESSION_DURATION_MINUTES)


def _session_ended(selected_date, time_slot) -> bool:
    end = _session_end(selected_date, time_slot)
    if end is None:
        return False
    return tz.is_past(end)


async def _existing_tickets(db: AsyncSession, item_ids: list[int]) -> dict:
    """order_item_id -> time_slot of the tickets already issued for these items."""
    rows = await db.execute(
        select(PurchasedTicket.order_item_id, PurchasedTicket.time_slot).where(
            PurchasedTicket.order_item_id.in_(item_ids)
        )
    )
    return {row.order_item_id: row.time_slot for row in rows}


async def issue_tickets(db: AsyncSession, order_id: int, order_number: str, user_id: Optional[str], items: list[_ItemPlan]) -> IssuanceResult:
    """
    Complete whatever part of issuance is still missing for a paid order.
    Commits after each step.
    """
    result = IssuanceResult()
    if not items:
        result.skipped = True
        logger.warning("order_has_no_items")
        return result

    item_ids = [plan.item_id for plan in items]

    # Step 1: one ticket per order item
    for attempt in range(1, TICKET_INSERT_ATTEMPTS + 1):
        existing = await _existing_tickets(db, item_ids)

        converted = []
        new_tickets = []
        for plan in items:
            if plan.item_id in existing:
                continue
            ticket_slot = plan.time_slot
            if _session_ended(plan.selected_date, plan.time_slot):
                converted.append(plan)
                ticket_slot = None
            new_tickets.append(
                PurchasedTicket(
                    ticket_code=generate_ticket_code(),
                    order_item_id=plan.item_id,
                    user_id=user_id,
                    ticket_id=plan.ticket_id,
                    valid_date=plan.selected_date,
                    time_slot=ticket_slot,
                    status=TicketStatus.ACTIVE.value,
                    queue_overflow=False,
                )
            )

        if not new_tickets:
            break

        db.add_all(new_tickets)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent issuer inserted some of these; re-read and fill the rest
            await db.rollback()
            logger.info("ticket_insert_conflict", attempt=attempt)
            if attempt == TICKET_INSERT_ATTEMPTS:
                raise
            continue

        for ticket in new_tickets:
            existing[ticket.order_item_id] = ticket.time_slot
        result.tickets_created = len(new_tickets)
        tickets_issued.inc(len(new_tickets))
        for plan in converted:
            result.converted_to_allday.append(f"{plan.ticket_id}:{plan.selected_date}:{plan.time_slot}")
            await record_delivery(
                db,
                order_number,
                "session_ended_converted_to_allday",
                {
                    "ticket_id": plan.ticket_id,
                    "selected_date": str(plan.selected_date),
                    "original_slot": str(plan.time_slot),
                    "session_end_time": _session_end(plan.selected_date, plan.time_slot).isoformat(),
                },
            )
            logger.info(
                "session_ended_converted_to_allday",
                ticket_id=plan.ticket_id,
                valid_date=str(plan.selected_date),
                time_slot=str(plan.time_slot),
            )
        break

    result.tickets_existing = len(items) - result.tickets_created

    # Step 2: queue numbers per session bucket
    buckets = sorted(
        {(plan.ticket_id, plan.selected_date, existing[plan.item_id]) for plan in items if existing.get(plan.item_id) is not None}
    )
    for ticket_id, valid_date, slot in buckets:
        for attempt in range(1, QUEUE_ASSIGN_ATTEMPTS + 1):
            try:
                numbered = await assign_queue_numbers(db, ticket_id, valid_date, slot)
                await db.commit()
                result.queue_numbered += len(numbered)
                break
            except IntegrityError:
                await db.rollback()
                logger.info("queue_assign_conflict", ticket_id=ticket_id, valid_date=str(valid_date), attempt=attempt)
                if attempt == QUEUE_ASSIGN_ATTEMPTS:
                    raise

    # Step 3: holds become sales, claimed and counted in one transaction per item
    for plan in items:
        if plan.capacity_finalized:
            continue
        claim = await db.execute(
            update(OrderItem)
            .where(OrderItem.id == plan.item_id, OrderItem.capacity_finalized_at.is_(None))
            .values(capacity_finalized_at=tz.utcnow())
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 0:
            await db.rollback()
            continue
        ticket_slot = existing.get(plan.item_id)
        if ticket_slot == plan.time_slot:
            applied = await capacity_service.finalize_sold(
                db, plan.ticket_id, plan.selected_date, plan.time_slot, plan.quantity
            )
        else:
            # Converted to all-day: the sale lands on the all-day slot, the hold sits on the session
            applied = await capacity_service.increment_sold(
                db, plan.ticket_id, plan.selected_date, ticket_slot, plan.quantity
            )
            await capacity_service.release_reserved(
                db, plan.ticket_id, plan.selected_date, plan.time_slot, plan.quantity
            )
        await db.commit()
        if applied:
            result.capacity_applied += 1
        else:
            result.capacity_dropped += 1

    # Step 4: issuance complete
    await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.tickets_issued_at.is_(None))
        .values(tickets_issued_at=tz.utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info(
        "tickets_issued",
        created=result.tickets_created,
        existing=result.tickets_existing,
        queue_numbered=result.queue_numbered,
        capacity_applied=result.capacity_applied,
        capacity_dropped=result.capacity_dropped,
    )
    return result


async def release_order_capacity(db: AsyncSession, order_id: int, order_number: str, items: list[_ItemPlan]) -> bool:
    """Give back the reservations of a never-paid order, once."""
    claim = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.capacity_released_at.is_(None))
        .values(capacity_released_at=tz.utcnow())
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount == 0:
        await db.rollback()
        return False
    for plan in items:
        await capacity_service.release_reserved(db, plan.ticket_id, plan.selected_date, plan.time_slot, plan.quantity)
    await db.commit()
    logger.info("order_capacity_released", order_number=order_number, items=len(items))
    return True


def _plans(order: Order) -> list[_ItemPlan]:
    return [
        _ItemPlan(
            item_id=item.id,
            ticket_id=item.ticket_id,
            selected_date=item.selected_date,
            time_slot=item.time_slot,
            quantity=item.quantity,
            capacity_finalized=item.capacity_finalized_at is not None,
        )
        for item in order.items
    ]


async def _reconcile_ticket_order(db: AsyncSession, order: Order, new_status: OrderStatus, payload: dict) -> ReconciliationResult:
    order_number = order.order_number
    previous = OrderStatus(order.status)
    order_id = order.id
    applied = await _apply_transition(db, order, previous, new_status, payload)
    await db.commit()

    order = await _load_order(db, order_number)
    current = OrderStatus(order.status)
    plans = _plans(order)
    user_id = order.user_id
    total = order.total
    needs_issuance = current == OrderStatus.PAID and order.tickets_issued_at is None
    needs_release = (
        applied
        and new_status in (OrderStatus.FAILED, OrderStatus.EXPIRED)
        and order.paid_at is None
        and order.capacity_released_at is None
    )

    if applied and new_status == OrderStatus.PAID:
        await flag_amount_mismatch(db, order_number, total, payload.get("gross_amount"), payload)

    result = ReconciliationResult(
        order_number=order_number,
        previous_status=previous.value,
        mapped_status=new_status.value,
        status=current.value,
        transition_applied=applied,
    )

    if needs_issuance:
        result.issuance = await issue_tickets(db, order_id, order_number, user_id, plans)
    if needs_release:
        result.capacity_released = await release_order_capacity(db, order_id, order_number, plans)
    return result


async def _reconcile_product_order(
    db: AsyncSession,
    order: ProductOrder,
    new_status: OrderStatus,
    payload: dict,
) -> ReconciliationResult:
    order_number = order.order_number
    previous = OrderStatus(order.payment_status)
    order_id = order.id
    applied = await product_order_service.apply_product_transition(db, order, previous, new_status, payload)
    await db.commit()

    order = await product_order_service.load_product_order(db, order_number)
    current = OrderStatus(order.payment_status)
    needs_fulfilment = current == OrderStatus.PAID and order.pickup_code is None
    needs_release = (
        applied
        and new_status in (OrderStatus.FAILED, OrderStatus.EXPIRED)
        and order.paid_at is None
        and order.stock_released_at is None
    )
    total = order.total

    result = ReconciliationResult(
        order_number=order_number,
        previous_status=previous.value,
        mapped_status=new_status.value,
        status=current.value,
        transition_applied=applied,
        kind="product",
    )

    if needs_fulfilment:
        result.fulfilment = await product_order_service.finalize_product_payment(
            db, order_id, order_number, total, payload.get("gross_amount"), payload
        )
    if needs_release:
        result.stock_released = await product_order_service.release_product_stock(db, order_id, order_number)
    return result


async def handle_notification(db: AsyncSession, payload: dict, verify_signature: bool = True) -> ReconciliationResult:
    """
    Reconcile one gateway notification.

    Raises AuthenticationError on a bad signature and NotFoundError for an
    unknown order. Duplicate and out-of-order deliveries return normally.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Notification body must be a JSON object")

    order_number = str(payload.get("order_id") or "")

    if verify_signature and not signature_matches(payload):
        record_webhook("invalid_signature")
        logger.warning("webhook_signature_invalid", order_number=order_number)
        await record_delivery(db, order_number, "invalid_signature", payload, success=False, error_message="Invalid signature")
        raise AuthenticationError("Invalid signature")

    if not order_number:
        raise ValidationError("Missing order_id")

    with order_log_context(order_number), reconciliation_latency.time():
        new_status = map_status(payload.get("transaction_status"), payload.get("fraud_status"))

        product = await product_order_service.load_product_order(db, order_number)
        if product is not None:
            result = await _reconcile_product_order(db, product, new_status, payload)
            event_type = "product_order_processed"
        else:
            order = await _load_order(db, order_number)
            if order is None:
                record_webhook("not_found")
                logger.warning("order_not_found")
                await record_delivery(db, order_number, "order_not_found", payload, success=False, error_message="Order not found")
                raise NotFoundError("Order not found")
            result = await _reconcile_ticket_order(db, order, new_status, payload)
            event_type = "ticket_order_processed"

        record_webhook("applied" if result.transition_applied else "ignored")
        logger.info(
            event_type,
            previous=result.previous_status,
            mapped=result.mapped_status,
            status=result.status,
            applied=result.transition_applied,
        )
        await record_delivery(db, order_number, event_type, payload, success=True)
    return result


async def _stuck_order_numbers(db: AsyncSession, model, *criteria, limit: int) -> list[str]:
    rows = await db.execute(select(model.order_number).where(*criteria).order_by(model.id).limit(limit))
    return list(rows.scalars().all())


async def reconcile_stuck_orders(db: AsyncSession, limit: int = 100) -> dict:
    """
    Finish work an interrupted reconciliation left behind: paid orders whose
    tickets or pickup code were never issued, and never-paid failed/expired
    orders whose reservations were not released.
    """
    never_paid = [OrderStatus.FAILED.value, OrderStatus.EXPIRED.value]
    stuck_paid = await _stuck_order_numbers(
        db, Order, Order.status == OrderStatus.PAID.value, Order.tickets_issued_at.is_(None), limit=limit
    )
    stuck_unreleased = await _stuck_order_numbers(
        db,
        Order,
        Order.status.in_(never_paid),
        Order.paid_at.is_(None),
        Order.capacity_released_at.is_(None),
        limit=limit,
    )
    stuck_products = await _stuck_order_numbers(
        db,
        ProductOrder,
        ProductOrder.payment_status == OrderStatus.PAID.value,
        ProductOrder.pickup_code.is_(None),
        limit=limit,
    )
    stuck_stock = await _stuck_order_numbers(
        db,
        ProductOrder,
        ProductOrder.payment_status.in_(never_paid),
        ProductOrder.paid_at.is_(None),
        ProductOrder.stock_released_at.is_(None),
        limit=limit,
    )

    fixed, released, errors = 0, 0, []

    for order_number in stuck_paid:
        with order_log_context(order_number):
            order = await _load_order(db, order_number)
            try:
                await issue_tickets(db, order.id, order_number, order.user_id, _plans(order))
                fixed += 1
            except SQLAlchemyError as e:
                await db.rollback()
                errors.append({"order_number": order_number, "error": str(e)})
                logger.error("reconcile_issue_failed", error=str(e))

    for order_number in stuck_products:
        with order_log_context(order_number):
            order = await product_order_service.load_product_order(db, order_number)
            last_notification = (order.payment_data or [{}])[-1]
            try:
                await product_order_service.finalize_product_payment(
                    db,
                    order.id,
                    order_number,
                    order.total,
                    last_notification.get("gross_amount"),
                    last_notification,
                )
                fixed += 1
            except SQLAlchemyError as e:
                await db.rollback()
                errors.append({"order_number": order_number, "error": str(e)})
                logger.error("reconcile_fulfilment_failed", error=str(e))

    for order_number in stuck_unreleased:
        with order_log_context(order_number):
            order = await _load_order(db, order_number)
            if await release_order_capacity(db, order.id, order_number, _plans(order)):
                released += 1

    for order_number in stuck_stock:
        with order_log_context(order_number):
            order = await product_order_service.load_product_order(db, order_number)
            if await product_order_service.release_product_stock(db, order.id, order_number):
                released += 1

    checked = len(stuck_paid) + len(stuck_unreleased) + len(stuck_products) + len(stuck_stock)
    logger.info("reconcile_summary", checked=checked, fixed=fixed, released=released, errors=len(errors))
    return {"checked": checked, "fixed": fixed, "released": released, "errors": errors}
