from ticketing.schemas.booking_intent import BookingIntent, BookingIntentCreate, BookingIntentResponse
from ticketing.schemas.capacity import CapacityGenerate, CapacityGenerateResponse, CapacitySlotResponse
from ticketing.schemas.order import OrderResponse, TicketResponse, TicketValidationResponse
from ticketing.schemas.payment import PaymentNotification, SyncRequest, WebhookResponse
from ticketing.schemas.product import ProductOrderResponse
from ticketing.schemas.session import SessionValidationResponse

__all__ = [
    "BookingIntent", "BookingIntentCreate", "BookingIntentResponse",
    "CapacityGenerate", "CapacityGenerateResponse", "CapacitySlotResponse",
    "OrderResponse", "TicketResponse", "TicketValidationResponse",
    "PaymentNotification", "SyncRequest", "WebhookResponse",
    "ProductOrderResponse",
    "SessionValidationResponse",
]
