"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .intent_storage import IntentStorage
from .memory_intent_storage import InMemoryIntentStorage

__all__ = ['IntentStorage', 'InMemoryIntentStorage']
