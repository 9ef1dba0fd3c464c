"""
Quarry Cache — query result cache protocol.

Only the key/tag/TTL contract lives here; any object satisfying
``CacheStore`` can back a connection. ``MemoryStore`` is the bundled
in-process store.
"""

from .backends import MemoryStore, TagSet
from .core import CacheEntry, CacheItem, CacheStore, TaggedCache
from .key_builder import QueryKeyBuilder

__all__ = [
    "CacheEntry",
    "CacheItem",
    "CacheStore",
    "TaggedCache",
    "MemoryStore",
    "TagSet",
    "QueryKeyBuilder",
]
