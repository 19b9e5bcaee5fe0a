from ticketing.models.capacity import CapacitySlot
from ticketing.models.order import Order, OrderItem, OrderStatus
from ticketing.models.ticket import PurchasedTicket, TicketStatus
from ticketing.models.product import (
    PickupStatus,
    ProductOrder,
    ProductOrderItem,
    ProductOrderStatus,
    ProductVariant,
)
from ticketing.models.audit import WebhookLog, Reservation, StockHold

__all__ = [
    "CapacitySlot",
    "Order", "OrderItem", "OrderStatus",
    "PurchasedTicket", "TicketStatus",
    "ProductVariant", "ProductOrder", "ProductOrderItem", "ProductOrderStatus", "PickupStatus",
    "WebhookLog", "Reservation", "StockHold",
]
