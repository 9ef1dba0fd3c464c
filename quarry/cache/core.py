"""
Quarry Cache — Core types and protocols for the query cache.

Defines the contract between the connection layer and any cache store:
a ``CacheItem`` directive attached to a query, the ``CacheEntry`` record
a store keeps, and the ``CacheStore`` protocol itself.

Usage:
    from quarry.cache import CacheItem, MemoryStore

    item = CacheItem("user:1").expire(60).tag("users")
    db.table("users").where("id", 1).cache(item).find()
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import (
    Any,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)

from ..faults import InvalidArgumentFault

__all__ = [
    "CacheEntry",
    "CacheItem",
    "CacheStore",
    "TaggedCache",
    "Expiry",
]

Expiry = Union[None, int, float, datetime, timedelta]


# ============================================================================
# Cache Entry
# ============================================================================

@dataclass(slots=True)
class CacheEntry:
    """
    Single stored value with its expiry and tags.

    ``expires_at`` is an absolute ``time.time()`` timestamp or None.
    """
    key: str
    value: Any
    created_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None
    tags: Tuple[str, ...] = ()

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at

    @property
    def ttl_remaining(self) -> Optional[float]:
        """Remaining TTL in seconds, or None if no expiry."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.time())

    def __repr__(self) -> str:
        ttl = f", ttl={self.ttl_remaining:.1f}s" if self.ttl_remaining else ""
        return f"<CacheEntry key={self.key!r}{ttl}>"


# ============================================================================
# Cache Item (query cache directive)
# ============================================================================

class CacheItem:
    """
    A cache directive handed to ``Query.cache()``.

    Carries the key, the value once set, an expiry and an optional tag.
    ``is_hit()`` turns true as soon as a value has been ``set()``.
    """

    def __init__(self, key: Optional[str] = None):
        self._key = key
        self._value: Any = None
        self._expire: Union[None, float, datetime] = None
        self._tag: Optional[str] = None
        self._is_hit = False

    def set_key(self, key: str) -> "CacheItem":
        self._key = key
        return self

    def get_key(self) -> Optional[str]:
        return self._key

    def tag(self, tag: Optional[str] = None) -> "CacheItem":
        self._tag = tag
        return self

    def get_tag(self) -> Optional[str]:
        return self._tag

    def set(self, value: Any) -> "CacheItem":
        self._value = value
        self._is_hit = True
        return self

    def get(self) -> Any:
        return self._value

    def is_hit(self) -> bool:
        return self._is_hit

    def get_expire(self) -> Union[None, int, datetime]:
        """
        Remaining lifetime.

        Returns the stored ``datetime`` verbatim when an absolute expiry
        was given, else the remaining seconds, else None.
        """
        if isinstance(self._expire, datetime):
            return self._expire
        if not self._expire:
            return None
        return int(self._expire - time.time())

    def expire(self, expire: Expiry) -> "CacheItem":
        """Set the expiry: None, an absolute datetime, seconds or a timedelta."""
        if expire is None:
            self._expire = None
        elif isinstance(expire, datetime):
            self._expire = expire
        elif isinstance(expire, (timedelta, int, float)) and not isinstance(expire, bool):
            self.expires_after(expire)
        else:
            raise InvalidArgumentFault("not support datetime")
        return self

    def expires_after(self, interval: Union[int, float, timedelta]) -> "CacheItem":
        if isinstance(interval, timedelta):
            self._expire = time.time() + interval.total_seconds()
        elif isinstance(interval, (int, float)) and not isinstance(interval, bool):
            self._expire = time.time() + interval
        else:
            raise InvalidArgumentFault("not support datetime")
        return self

    def expires_at(self, expiration: datetime) -> "CacheItem":
        if not isinstance(expiration, datetime):
            raise InvalidArgumentFault("not support datetime")
        self._expire = expiration
        return self

    def ttl(self) -> Optional[int]:
        """Expiry as a relative TTL in seconds, for stores that take one."""
        expire = self.get_expire()
        if isinstance(expire, datetime):
            now = datetime.now(expire.tzinfo) if expire.tzinfo else datetime.now()
            return max(0, int((expire - now).total_seconds()))
        return expire

    def __repr__(self) -> str:
        return f"<CacheItem key={self._key!r} tag={self._tag!r} hit={self._is_hit}>"


# ============================================================================
# Store protocol
# ============================================================================

@runtime_checkable
class TaggedCache(Protocol):
    """Handle returned by ``CacheStore.tag()``."""

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ...

    def clear(self) -> bool:
        ...


@runtime_checkable
class CacheStore(Protocol):
    """
    Minimal cache contract consumed by connections.

    Any object implementing these methods can be passed to
    ``DbManager.set_cache()``.
    """

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ...

    def has(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> bool:
        ...

    def clear(self) -> bool:
        ...

    def tag(self, name: Union[str, Iterable[str]]) -> TaggedCache:
        ...


def normalize_tags(name: Union[str, Iterable[str], None]) -> List[str]:
    if name is None:
        return []
    if isinstance(name, str):
        return [name]
    return list(name)
