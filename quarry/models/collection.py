"""
Quarry Collection — the result set of a model query.

A ``list`` of models with bulk helpers: relation loading for the whole
set (one query per relation), projection broadcast, key based
dictionary / diff / intersect, in-memory filtering and bulk writes.

``append`` broadcasts output attributes to every model like
``visible`` and ``hidden``; use ``push`` to add an item.

Usage:
    users = User.where("status", 1).select()
    users.load(["profile", "posts"])
    users.hidden(["password"]).to_dict()
    users.where("score", ">", 80).column("name", "id")
    users.diff(admins)
"""

from __future__ import annotations

import json
import operator
import re
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..db.query.relation import parse_relations

__all__ = ["Collection"]


def _get(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    try:
        return item[name]
    except KeyError:
        return None


def _like(value: Any, pattern: Any) -> bool:
    regex = "".join(".*" if ch == "%" else "." if ch == "_" else re.escape(ch) for ch in str(pattern))
    return re.fullmatch(regex, str(value), re.IGNORECASE | re.DOTALL) is not None


_COMPARE: Dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "like": _like,
    "not like": lambda value, pattern: not _like(value, pattern),
    "in": lambda value, options: value in options,
    "not in": lambda value, options: value not in options,
    "between": lambda value, bounds: bounds[0] <= value <= bounds[1],
    "not between": lambda value, bounds: not bounds[0] <= value <= bounds[1],
}


class Collection(list):
    """Ordered list of models (or plain rows)."""

    @classmethod
    def make(cls, items: Optional[Iterable[Any]] = None) -> "Collection":
        return cls(items or [])

    def __getitem__(self, index: Any) -> Any:
        result = super().__getitem__(index)
        return type(self)(result) if isinstance(index, slice) else result

    def is_empty(self) -> bool:
        return len(self) == 0

    def push(self, item: Any) -> "Collection":
        super().append(item)
        return self

    def first(self, default: Any = None) -> Any:
        return self[0] if self else default

    def last(self, default: Any = None) -> Any:
        return self[-1] if self else default

    def each(self, callback: Callable[[Any], Any]) -> "Collection":
        """Call ``callback`` on every item; stops when it returns ``False``."""
        for item in self:
            if callback(item) is False:
                break
        return self

    def map(self, callback: Callable[[Any], Any]) -> "Collection":
        return type(self)(callback(item) for item in self)

    def filter(self, callback: Optional[Callable[[Any], Any]] = None) -> "Collection":
        return type(self)(item for item in self if (callback(item) if callback else item))

    # ── Relations ────────────────────────────────────────────────────

    def load(self, relations: Any, cache: Any = False) -> "Collection":
        """Eager load ``relations`` for every model of the set."""
        if self:
            self[0].with_query_set(list(self), parse_relations(relations), {}, False, cache)
        return self

    def load_count(self, relations: Any) -> "Collection":
        """Add ``<relation>_count`` to every model (one query per model)."""
        return self.load_aggregate(relations, "count", "*")

    def load_aggregate(self, relations: Any, aggregate: str, field: str) -> "Collection":
        for model in self:
            model.relation_aggregate(None, relations, aggregate, field, False)
        return self

    def bind_attr(self, relation: str, attrs: Any) -> "Collection":
        for model in self:
            model.bind_attr(relation, attrs)
        return self

    def set_parent(self, parent: Any) -> "Collection":
        for model in self:
            model.set_parent(parent)
        return self

    # ── Projection ───────────────────────────────────────────────────

    def visible(self, visible: List[str]) -> "Collection":
        for model in self:
            model.visible(visible)
        return self

    def hidden(self, hidden: List[str]) -> "Collection":
        for model in self:
            model.hidden(hidden)
        return self

    def append(self, append: Any) -> "Collection":
        for model in self:
            model.append(append)
        return self

    def scene(self, scene: str) -> "Collection":
        for model in self:
            model.scene(scene)
        return self

    def with_attr(self, name: Any, callback: Optional[Callable[..., Any]] = None) -> "Collection":
        for model in self:
            model.with_attribute(name, callback)
        return self

    def to_dict(self) -> List[Any]:
        return [item.to_dict() if hasattr(item, "to_dict") else item for item in self]

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("ensure_ascii", False)
        kwargs.setdefault("default", str)
        return json.dumps(self.to_dict(), **kwargs)

    # ── Keys ─────────────────────────────────────────────────────────

    def _index_key(self, items: List[Any], index_key: Optional[str]) -> Optional[str]:
        if index_key:
            return index_key
        first = items[0] if items else (self[0] if self else None)
        pk = first.get_pk() if hasattr(first, "get_pk") else None
        return pk if isinstance(pk, str) else None

    def dictionary(self, items: Optional[Iterable[Any]] = None,
                   index_key: Optional[str] = None) -> Dict[Any, Any]:
        """``{key: item}`` for ``items`` (default: this set), keyed by the primary key."""
        items = list(self if items is None else items)
        key = self._index_key(items, index_key)
        if key is None:
            return dict(enumerate(items))
        return {_get(item, key): item for item in items}

    def key_by(self, key: str) -> Dict[Any, Any]:
        return {_get(item, key): item for item in self}

    def diff(self, items: Iterable[Any], index_key: Optional[str] = None) -> "Collection":
        """Items whose key does not occur in ``items``."""
        items = list(items)
        key = self._index_key(items, index_key)
        if key is None:
            return type(self)(item for item in self if item not in items)
        keys = self.dictionary(items, key)
        return type(self)(item for item in self if _get(item, key) not in keys)

    def intersect(self, items: Iterable[Any], index_key: Optional[str] = None) -> "Collection":
        """Items whose key also occurs in ``items``."""
        items = list(items)
        key = self._index_key(items, index_key)
        if key is None:
            return type(self)(item for item in self if item in items)
        keys = self.dictionary(items, key)
        return type(self)(item for item in self if _get(item, key) in keys)

    def column(self, name: Optional[str], index: Optional[str] = None) -> Any:
        """
        Values of ``name`` (whole items when ``None``), as a list or,
        with ``index``, a dict keyed by that attribute.
        """
        if index is None:
            return [item if name is None else _get(item, name) for item in self]
        return {_get(item, index): (item if name is None else _get(item, name)) for item in self}

    # ── In-memory query ──────────────────────────────────────────────

    def where(self, field: str, op: Any = None, value: Any = None) -> "Collection":
        """Items whose ``field`` satisfies the comparison (``where("a", 1)`` means ``=``)."""
        if value is None and op is not None and not (isinstance(op, str) and op.lower() in _COMPARE):
            op, value = "=", op
        compare = _COMPARE.get(str(op or "=").lower())
        if compare is None:
            raise ValueError(f"unsupported operator: {op}")

        result = type(self)()
        for item in self:
            current = _get(item, field)
            try:
                matched = compare(current, value)
            except TypeError:
                matched = False
            if matched:
                result.push(item)
        return result

    def where_like(self, field: str, value: str) -> "Collection":
        return self.where(field, "like", value)

    def where_in(self, field: str, values: Iterable[Any]) -> "Collection":
        return self.where(field, "in", list(values))

    def order(self, field: str, order: str = "asc") -> "Collection":
        """Sorted copy; ``None`` values sort first."""
        reverse = order.lower() == "desc"
        return type(self)(sorted(
            self, key=lambda item: (_get(item, field) is not None, _get(item, field)), reverse=reverse
        ))

    # ── Writes ───────────────────────────────────────────────────────

    def delete(self) -> bool:
        for model in self:
            model.delete()
        return True

    def update(self, data: Dict[str, Any], allow_field: Optional[List[str]] = None) -> bool:
        for model in self:
            if allow_field:
                model.allow_field(allow_field)
            model.save(data)
        return True
