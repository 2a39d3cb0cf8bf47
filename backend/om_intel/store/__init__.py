"""Ephemeral context store implementations."""

# Import backends first to trigger registration via decorators
from om_intel.store.factory import ContextStoreFactory
from om_intel.store.in_memory_store import InMemoryContextStore
from om_intel.store.redis_store import RedisContextStore
from om_intel.store.writer import ContextWriter

__all__ = [
    "ContextStoreFactory",
    "ContextWriter",
    "InMemoryContextStore",
    "RedisContextStore",
]
