"""
Quarry Paginator — page data returned by ``Query.paginate()``.

Only the data object; rendering page links belongs to the host
application.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

__all__ = ["Paginator"]


@dataclass
class Paginator:
    """One page of results plus its position in the full set."""

    items: Any
    list_rows: int
    current_page: int = 1
    total: Optional[int] = None
    simple: bool = False
    options: Dict[str, Any] = field(default_factory=dict)
    has_more: bool = False
    last_page: Optional[int] = None

    def __post_init__(self) -> None:
        self.current_page = max(1, int(self.current_page))
        if self.simple:
            items = list(self.items)
            self.has_more = len(items) > self.list_rows
            if self.has_more:
                self.items = self._slice(self.items, self.list_rows)
        else:
            self.total = int(self.total or 0)
            self.last_page = max(1, math.ceil(self.total / self.list_rows)) if self.list_rows else 1
            self.has_more = self.current_page < self.last_page

    @staticmethod
    def _slice(items: Any, length: int) -> Any:
        sliced = list(items)[:length]
        factory = getattr(items, "make", None)
        return factory(sliced) if factory is not None else sliced

    @classmethod
    def make(cls, items: Any, list_rows: int, current_page: int = 1, total: Optional[int] = None,
             simple: bool = False, options: Optional[Dict[str, Any]] = None) -> "Paginator":
        return cls(items, list_rows, current_page, total, simple, options or {})

    def is_empty(self) -> bool:
        return len(self) == 0

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def to_dict(self) -> Dict[str, Any]:
        items = self.items.to_dict() if hasattr(self.items, "to_dict") else list(self.items)
        return {
            "total": self.total,
            "per_page": self.list_rows,
            "current_page": self.current_page,
            "last_page": self.last_page,
            "has_more": self.has_more,
            "data": items,
        }
