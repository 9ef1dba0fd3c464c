"""
Quarry Raw — opaque SQL fragments.

A ``Raw`` is embedded into generated SQL verbatim: it never passes
through identifier quoting or value escaping. Its bind list is merged
into the owning statement when the fragment is rendered.

Usage:
    from quarry.db.raw import Raw

    db.table("users").where_raw("score > :min", {"min": 10})
    db.table("users").field(Raw("COUNT(*) AS total"))
    db.table("users").where("id", "in", Raw("SELECT user_id FROM posts"))
"""

from __future__ import annotations

from typing import Any, Dict, List, Union

__all__ = ["Raw"]

BindList = Union[Dict[str, Any], List[Any]]


class Raw:
    """Immutable SQL fragment plus its own bind values."""

    __slots__ = ("_value", "_bind")

    def __init__(self, value: str, bind: BindList | None = None):
        self._value = str(value)
        if bind is None:
            bind = {}
        self._bind = dict(bind) if isinstance(bind, dict) else list(bind)

    @property
    def value(self) -> str:
        return self._value

    @property
    def bind(self) -> BindList:
        return dict(self._bind) if isinstance(self._bind, dict) else list(self._bind)

    def get_value(self) -> str:
        return self._value

    def get_bind(self) -> BindList:
        return self.bind

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"Raw({self._value!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Raw):
            return self._value == other._value and self._bind == other._bind
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)
