"""
Gateway status vocabulary -> canonical order status.

Unknown transaction statuses map to pending, never to paid: an order only
becomes paid on a status we positively recognise.
"""

from typing import Optional

from ticketing.models.order import OrderStatus

_STATUS_TABLE: dict[str, OrderStatus] = {
    "settlement": OrderStatus.PAID,
    "pending": OrderStatus.PENDING,
    "expire": OrderStatus.EXPIRED,
    "expired": OrderStatus.EXPIRED,
    "refund": OrderStatus.REFUNDED,
    "refunded": OrderStatus.REFUNDED,
    "partial_refund": OrderStatus.REFUNDED,
    "deny": OrderStatus.FAILED,
    "cancel": OrderStatus.FAILED,
    "failure": OrderStatus.FAILED,
}

# Card captures are only paid once the fraud screen accepts them
_CAPTURE_PAID_FRAUD_STATUSES = {None, "accept"}


def map_status(transaction_status: Optional[object], fraud_status: Optional[object] = None) -> OrderStatus:
    tx = str(transaction_status or "").strip().lower()
    fraud = None if fraud_status is None else str(fraud_status).strip().lower()

    if tx == "capture":
        return OrderStatus.PAID if fraud in _CAPTURE_PAID_FRAUD_STATUSES else OrderStatus.PENDING

    return _STATUS_TABLE.get(tx, OrderStatus.PENDING)


# Allowed transitions. Anything not listed is ignored as a stale or duplicate delivery.
_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.EXPIRED}
    ),
    OrderStatus.PAID: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in _TRANSITIONS[current]
