"""
Redis-backed booking intent storage.
Implements IntentStorage using plain string keys with a TTL.

Failure handling:
  On Redis failure the store degrades to "no intent": reads return None and
  writes are dropped with a warning. A lost intent only means the user picks
  their tickets again after login; it must never turn into a 500.
"""

from typing import Optional

import redis

from ticketing.core.logging import get_logger
from ticketing.core.metrics import redis_connection_errors
from ticketing.infrastructure import get_redis
from ticketing.services.interfaces.intent_storage import IntentStorage

logger = get_logger(__name__)


class RedisIntentStorage(IntentStorage):
    """
    Shared intent storage.

    Use when:
    - More than one API worker serves the same users
    - Intents must survive a worker restart
    """

    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis = client or get_redis()

    def get(self, key: str) -> Optional[str]:
        try:
            return self.redis.get(key)
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.warning("intent_storage_read_failed", key=key, error=str(e))
            return None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            self.redis.set(key, value, ex=ttl_seconds)
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.warning("intent_storage_write_failed", key=key, error=str(e))

    def delete(self, key: str) -> None:
        try:
            self.redis.delete(key)
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.warning("intent_storage_delete_failed", key=key, error=str(e))
