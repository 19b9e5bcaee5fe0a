"""
Intent storage factory.
Configures which booking intent backend to use.
"""

from typing import Optional

from ticketing.core.config import get_settings
from ticketing.services.interfaces.intent_storage import IntentStorage
from ticketing.services.interfaces.memory_intent_storage import InMemoryIntentStorage
from ticketing.services.intent_storage import RedisIntentStorage


def build_intent_storage() -> IntentStorage:
    """
    Build the configured storage.

    - REDIS_ENABLED=true: RedisIntentStorage (shared across workers)
    - REDIS_ENABLED=false: InMemoryIntentStorage (single process)
    """
    if get_settings().REDIS_ENABLED:
        return RedisIntentStorage()
    return InMemoryIntentStorage()


# Singleton instance
_storage: Optional[IntentStorage] = None


def get_intent_storage() -> IntentStorage:
    """Get intent storage singleton."""
    global _storage
    if _storage is None:
        _storage = build_intent_storage()
    return _storage
