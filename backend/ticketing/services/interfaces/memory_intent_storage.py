"""
In-process intent storage - no Redis.
"""

from typing import Optional

from ticketing.services.interfaces.intent_storage import IntentStorage


class InMemoryIntentStorage(IntentStorage):
    """
    Plain dict storage. TTLs are ignored; the store's own staleness check
    still discards old intents.

    Use when:
    - Running a single worker without Redis
    - Tests
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)
