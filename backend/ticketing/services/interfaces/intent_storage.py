"""
Key-value storage interface behind the booking intent store.
"""

from abc import ABC, abstractmethod
from typing import Optional


class IntentStorage(ABC):
    """
    Interface for booking intent backends.

    Implementations:
    - RedisIntentStorage: shared across workers, entries expire on their own
    - InMemoryIntentStorage: single process, used when Redis is disabled and in tests
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Raw stored value, or None when absent."""

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value; deleting a missing key is not an error."""
