"""
Connections to external stores. Redis backs the booking intent store when
REDIS_ENABLED is set; nothing else in the service depends on it.
"""

from ticketing.infrastructure.redis_client import RedisClient, get_redis

__all__ = ["RedisClient", "get_redis"]
