"""
Booking intent endpoints.

The client keeps an opaque X-Client-Id across re-logins and uses it to
park and resume its in-progress selection.
"""

from fastapi import APIRouter, Depends, Header, status

from ticketing.schemas.booking_intent import BookingIntent, BookingIntentCreate, BookingIntentResponse
from ticketing.services.booking_intent import BookingIntentStore, intent_key
from ticketing.services.interfaces.intent_storage import IntentStorage
from ticketing.services.strategy_factory import get_intent_storage

router = APIRouter(prefix="/booking-intent", tags=["Booking Intent"])


def get_intent_store(
    x_client_id: str = Header(min_length=8, max_length=128),
    storage: IntentStorage = Depends(get_intent_storage),
) -> BookingIntentStore:
    return BookingIntentStore(storage, intent_key(x_client_id))


@router.put("", response_model=BookingIntent)
async def preserve_intent(
    intent: BookingIntentCreate,
    store: BookingIntentStore = Depends(get_intent_store),
):
    """Park the current selection before the user is sent to log in again."""
    return store.preserve(intent)


@router.get("", response_model=BookingIntentResponse)
async def restore_intent(store: BookingIntentStore = Depends(get_intent_store)):
    """Resume a parked selection. Stale or corrupt intents come back empty and are gone."""
    intent = store.restore()
    if intent is None:
        return BookingIntentResponse()
    return BookingIntentResponse(intent=intent, age_seconds=store.age())


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_intent(store: BookingIntentStore = Depends(get_intent_store)):
    store.clear()
