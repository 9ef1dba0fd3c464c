"""
Quarry Cache — In-memory store.

A process-local ``CacheStore`` with LRU capacity eviction, per-entry
TTL and tag-based group invalidation through an inverted index.

Thread-safe via a ``threading.RLock``; connections are synchronous.

Usage:
    from quarry.cache import MemoryStore

    store = MemoryStore(max_size=1000)
    manager.set_cache(store)
    store.tag("users").set("user:1", {...}, ttl=60)
    store.tag("users").clear()
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict, defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from ..core import CacheEntry, normalize_tags

__all__ = ["MemoryStore", "TagSet"]

logger = logging.getLogger("quarry.cache.memory")

_MISSING = object()


class TagSet:
    """Tag-scoped view over a ``MemoryStore``."""

    __slots__ = ("_store", "_tags")

    def __init__(self, store: "MemoryStore", tags: List[str]):
        self._store = store
        self._tags = tuple(tags)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return self._store.set(key, value, ttl, tags=self._tags)

    def append(self, key: str) -> None:
        """Attach an existing key to this tag set."""
        self._store._attach(key, self._tags)

    def clear(self) -> bool:
        self._store.delete_by_tags(self._tags)
        return True

    def __repr__(self) -> str:
        return f"<TagSet tags={list(self._tags)}>"


class MemoryStore:
    """
    In-memory cache store.

    - O(1) get/set/delete (OrderedDict, LRU order)
    - Expired entries are dropped lazily on access
    - Tag invalidation through an inverted ``tag -> keys`` index
    """

    __slots__ = (
        "_max_size",
        "_default_ttl",
        "_store",
        "_lock",
        "_tag_index",
        "hits",
        "misses",
    )

    def __init__(self, max_size: int = 10000, default_ttl: Optional[int] = None):
        """
        Args:
            max_size: Maximum number of entries (LRU eviction beyond it)
            default_ttl: TTL applied when ``set`` gets none (None = never expire)
        """
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._tag_index: Dict[str, Set[str]] = defaultdict(set)
        self.hits = 0
        self.misses = 0

    @property
    def name(self) -> str:
        return "memory"

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._lookup(key)
            if entry is None:
                self.misses += 1
                return default
            self.hits += 1
            self._store.move_to_end(key)
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Iterable[str] = (),
    ) -> bool:
        ttl = self._default_ttl if ttl is None else ttl
        expires_at = time.time() + ttl if ttl else None
        with self._lock:
            if key in self._store:
                self._evict_key(key)
            while len(self._store) >= self._max_size:
                oldest = next(iter(self._store))
                logger.debug("Evicting %s (capacity %d)", oldest, self._max_size)
                self._evict_key(oldest)
            tags = tuple(tags)
            self._store[key] = CacheEntry(key=key, value=value, expires_at=expires_at, tags=tags)
            for tag in tags:
                self._tag_index[tag].add(key)
        return True

    def has(self, key: str) -> bool:
        with self._lock:
            return self._lookup(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._store:
                return False
            self._evict_key(key)
            return True

    def pull(self, key: str, default: Any = None) -> Any:
        """Get and delete."""
        with self._lock:
            value = self.get(key, _MISSING)
            if value is _MISSING:
                return default
            self.delete(key)
            return value

    def remember(self, key: str, factory, ttl: Optional[int] = None) -> Any:
        """Return the cached value or compute, store and return it."""
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = factory() if callable(factory) else factory
            self.set(key, value, ttl)
        return value

    def clear(self) -> bool:
        with self._lock:
            self._store.clear()
            self._tag_index.clear()
        return True

    # ── Tags ─────────────────────────────────────────────────────────

    def tag(self, name: Union[str, Iterable[str]]) -> TagSet:
        return TagSet(self, normalize_tags(name))

    def delete_by_tags(self, tags: Iterable[str]) -> int:
        """Invalidate every key carrying any of ``tags``."""
        with self._lock:
            keys: Set[str] = set()
            for tag in tags:
                keys |= self._tag_index.pop(tag, set())
            count = 0
            for key in keys:
                if key in self._store:
                    self._evict_key(key)
                    count += 1
            return count

    def keys(self) -> List[str]:
        with self._lock:
            return [k for k, e in self._store.items() if not e.is_expired]

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __repr__(self) -> str:
        return f"<MemoryStore entries={len(self._store)} max={self._max_size}>"

    # ── Internal ─────────────────────────────────────────────────────

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired:
            self._evict_key(key)
            return None
        return entry

    def _attach(self, key: str, tags) -> None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return
            entry.tags = tuple(dict.fromkeys(entry.tags + tuple(tags)))
            for tag in tags:
                self._tag_index[tag].add(key)

    def _evict_key(self, key: str) -> None:
        entry = self._store.pop(key, None)
        if entry is None:
            return
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tag_index[tag]
