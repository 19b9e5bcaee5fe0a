"""
Booking intent store: an in-progress purchase selection that survives a
forced re-login.

The intent is a resumable-workflow token with an expiry. It is written when
checkout starts, read back after the user authenticates again, and cleared
on successful resumption or cancellation. A record that is malformed,
incomplete or older than the staleness window is deleted on read, so it can
never be resumed later.
"""

import json
import time
from typing import Callable, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from ticketing.core.config import get_settings
from ticketing.core.logging import get_logger
from ticketing.schemas.booking_intent import BookingIntent, BookingIntentCreate
from ticketing.services.interfaces.intent_storage import IntentStorage

logger = get_logger(__name__)

KEY_PREFIX = "booking_intent"


def intent_key(client_id: str) -> str:
    return f"{KEY_PREFIX}:{client_id}"


class BookingIntentStore:
    def __init__(
        self,
        storage: IntentStorage,
        key: str,
        staleness_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.key = key
        self.staleness_seconds = (
            staleness_seconds if staleness_seconds is not None else get_settings().BOOKING_INTENT_TTL_SECONDS
        )
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def preserve(self, intent: Union[BookingIntentCreate, dict]) -> BookingIntent:
        """Store the selection stamped with the current time."""
        data = intent.model_dump() if isinstance(intent, BookingIntentCreate) else dict(intent)
        data["timestamp"] = self._now_ms()
        stored = BookingIntent.model_validate(data)
        self.storage.set(self.key, stored.model_dump_json(), ttl_seconds=self.staleness_seconds)
        logger.info("booking_intent_preserved", key=self.key, ticket_id=stored.ticket_id)
        return stored

    def _discard(self, reason: str) -> None:
        self.storage.delete(self.key)
        logger.info("booking_intent_discarded", key=self.key, reason=reason)

    def restore(self) -> Optional[BookingIntent]:
        raw = self.storage.get(self.key)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            self._discard("malformed_json")
            return None

        try:
            intent = BookingIntent.model_validate(data)
        except SchemaValidationError:
            self._discard("missing_fields")
            return None

        if self._now_ms() - intent.timestamp > self.staleness_seconds * 1000:
            self._discard("stale")
            return None

        return intent

    def has_intent(self) -> bool:
        return self.restore() is not None

    def clear(self) -> None:
        self.storage.delete(self.key)

    def age(self) -> Optional[float]:
        """Seconds since the intent was preserved, or None without a usable intent."""
        intent = self.restore()
        if intent is None:
            return None
        return (self._now_ms() - intent.timestamp) / 1000
