"""
Quarry Relation Base — the query object behind every model relation.

A ``Relation`` wraps a query on the related model. Calling a query
method on it (``where``, ``order``, ``select``, ...) applies the
relation's own constraint once (``_base_query``) and forwards the call;
chained calls return the relation itself.

Eager loading never applies that constraint: it builds one batched
query for a whole result set and matches the rows back in Python.
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Type

from ...faults import RelationFault
from ...utils import class_basename, snake

if TYPE_CHECKING:
    from ..base import Model

logger = logging.getLogger("quarry.models.relation")

__all__ = ["Relation", "QUERY_METHODS"]

# Query methods reachable through a relation
QUERY_METHODS = frozenset({
    # conditions
    "where", "where_or", "where_xor", "where_null", "where_not_null", "where_in",
    "where_not_in", "where_like", "where_not_like", "where_between", "where_not_between",
    "where_column", "where_exp", "where_raw", "where_exists", "where_not_exists",
    "where_time", "where_between_time", "where_not_between_time", "where_day",
    "where_month", "where_year", "when", "remove_where_field", "scope",
    # shaping
    "field", "order", "limit", "page", "group", "having", "alias", "cache",
    "distinct", "lock", "master", "json", "with_", "with_join", "with_count",
    "with_sum", "with_max", "with_min", "with_avg", "with_cache", "visible",
    "hidden", "append", "filter", "fail_exception", "allow_empty", "bind_attr",
    # terminals
    "select", "find", "find_or_fail", "find_or_empty", "select_or_fail", "value",
    "column", "count", "sum", "max", "min", "avg", "paginate", "chunk", "cursor",
    "insert", "insert_all", "update", "delete", "inc", "dec", "set_inc", "set_dec",
    "fetch_sql", "build_sql", "get_table", "get_options", "get_last_sql",
})


class Relation:
    """
    Base class of the relation kinds.

    Attributes:
        model: Related model class
        query: Query on the related model
        name: Relation name on the parent (set by ``Model.related``)
        foreign_key / local_key: Key columns, meaning depends on the kind
    """

    model: Type["Model"]

    def __init__(self, parent: "Model", model: Type["Model"]):
        self._parent = parent
        self._self_relation = type(parent) is model
        self.model = model
        self.query = model().db()
        self.name = ""
        self.foreign_key = ""
        self.local_key = ""
        self._base_applied = False
        self._with_limit = 0
        self._with_field: Any = None
        self._without_field: Any = None
        self._default: Any = True

    # ── Identity ─────────────────────────────────────────────────────

    @property
    def parent(self) -> "Model":
        return self._parent

    def get_parent(self) -> "Model":
        return self.parent

    def set_name(self, name: str) -> "Relation":
        self.name = name
        return self

    def get_model(self) -> "Model":
        """A model instance of the related class bound to the query."""
        return self.query.get_model()

    def is_self_relation(self) -> bool:
        return self._self_relation

    # ── Query access ─────────────────────────────────────────────────

    def get_query(self):
        """The related query with the relation constraint applied."""
        if not self._base_applied:
            self._base_applied = True
            self._base_query()
        return self.query

    def _base_query(self) -> None:
        """Constrain ``self.query`` to the rows of the parent."""

    def __getattr__(self, name: str) -> Any:
        if name not in QUERY_METHODS:
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")
        method = getattr(self.get_query(), name)

        @functools.wraps(method)
        def proxy(*args: Any, **kwargs: Any) -> Any:
            result = method(*args, **kwargs)
            return self if result is self.query else result

        return proxy

    # ── Options ──────────────────────────────────────────────────────

    def with_limit(self, limit: int) -> "Relation":
        """Keep at most ``limit`` related rows per parent."""
        self._with_limit = limit
        return self

    def with_field(self, field: Any) -> "Relation":
        self._with_field = field
        return self

    def without_field(self, field: Any) -> "Relation":
        self._without_field = field
        return self

    def with_attr(self, attrs: Dict[str, Any]) -> "Relation":
        """Read transforms (``{name: callback}``) for the related models."""
        self.query.with_attr(attrs)
        return self

    def with_default(self, default: Any = True) -> "Relation":
        """
        Value used when a one-to-one relation has no row: ``True`` for an
        empty model, a dict of attributes, a ``callable(model)`` or
        ``False`` for ``None``.
        """
        self._default = default
        return self

    # ── Loading contract ─────────────────────────────────────────────

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        raise NotImplementedError

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        raise NotImplementedError

    def with_query(self, result: "Model", relation: str, subs: List[str], closure: Any,
                   cache: Any = None, join: bool = False) -> None:
        self.with_query_set([result], relation, subs, closure, cache, join)

    def get_relation_aggregate_query(self, closure: Any, aggregate: str, field: str) -> str:
        raise RelationFault(f"relation not support: {aggregate}")

    def get_relation_aggregate(self, result: "Model", closure: Any, aggregate: str, field: str) -> Any:
        raise RelationFault(f"relation not support: {aggregate}")

    def has(self, operator: str = ">=", count: int = 1, id: str = "*", join_type: str = "",
            query: Any = None):
        raise RelationFault("relation not support: has")

    def has_where(self, where: Any = None, fields: Any = None, join_type: str = "", query: Any = None):
        raise RelationFault("relation not support: hasWhere")

    def save(self, data: Any, replace: bool = True):
        raise RelationFault(f"relation not support: save ({type(self).__name__})")

    # ── Helpers ──────────────────────────────────────────────────────

    def _prepare_eager(self, closure: Any, cache: Any, keys: Tuple[str, ...] = ()) -> None:
        """Closure, cache and field selection for a batched eager query."""
        self._base_applied = True
        if closure is not None:
            self.query.call_modifier(closure, self)
        if cache:
            self.query.cache(*cache)
        self._apply_fields(keys)

    def _apply_fields(self, keys: Tuple[str, ...] = ()) -> None:
        if self._with_field:
            fields = self._with_field
            if isinstance(fields, str):
                fields = [item.strip() for item in fields.split(",")]
            self.query.field(list(fields) + [key for key in keys if key not in fields])
        elif self._without_field:
            self.query.without_field(self._without_field)

    def _default_model(self) -> Any:
        default = self._default
        if default is False or default is None:
            return None
        model = self.model()
        if isinstance(default, dict):
            model.data(default)
        elif callable(default):
            value = default(model)
            if value is not None:
                return value
        return model

    def _aliases(self) -> Tuple[str, str]:
        """``(parent_alias, related_alias)``, distinct for self relations."""
        parent_alias = snake(class_basename(type(self.parent)))
        related_alias = snake(class_basename(self.model))
        if related_alias == parent_alias:
            related_alias = f"{related_alias}_self"
        return parent_alias, related_alias

    @staticmethod
    def _alias_parent(query: Any, alias: str) -> Any:
        """
        Select the parent table as ``alias``.

        The alias goes on the table option itself, so a self relation
        joining the same table under another alias cannot replace it.
        """
        table = query.get_table()
        if isinstance(table, str) and table:
            return query.table({table: alias})
        return query.alias(alias)

    def _soft_delete_where(self, query: Any, alias: str) -> None:
        """Repeat the related model's soft delete rule on ``alias``."""
        soft = self.query.get_options("soft_delete")
        if not soft:
            return
        field, condition = soft
        column = f"{alias}.{field.split('.')[-1]}"
        op, value = condition
        if str(op).upper() == "NULL":
            query.where_null(column)
        else:
            query.where(column, op, value)

    @staticmethod
    def _qualify_where(where: Any, alias: str) -> Any:
        """Prefix the unqualified fields of a dict / list where with ``alias``."""
        if isinstance(where, dict):
            return {key if "." in key else f"{alias}.{key}": value for key, value in where.items()}
        if isinstance(where, list):
            items = []
            for item in where:
                if isinstance(item, (list, tuple)) and item and isinstance(item[0], str) and "." not in item[0]:
                    item = [f"{alias}.{item[0]}", *item[1:]]
                items.append(item)
            return items
        return where

    @staticmethod
    def _relation_fields(fields: Any, alias: str) -> List[str]:
        if not fields:
            return [f"{alias}.*"]
        if isinstance(fields, str):
            fields = [item.strip() for item in fields.split(",")]
        return [field if "." in field else f"{alias}.{field}" for field in fields]

    def _has_where_condition(self, where: Any, alias: str) -> Any:
        """Normalize the ``has_where`` condition onto the related alias."""
        if isinstance(where, (dict, list)):
            return self._qualify_where(where, alias)
        if callable(where) and not hasattr(where, "get_options"):
            self.query.via(alias)
            self.query.call_modifier(where, self.query)
            return self.query
        if hasattr(where, "via"):
            where.via(alias)
        return where

    @staticmethod
    def _unique(values: List[Any]) -> List[Any]:
        return list(dict.fromkeys(value for value in values if value is not None))

    def _aggregate(self, query: Any, aggregate: str, field: str) -> Any:
        return getattr(query, aggregate.lower())(field)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name or '?'} -> {self.model.__name__}>"


def key_of(model: "Model", key: str) -> Any:
    """Raw stored value of ``key`` on ``model`` (``None`` when absent)."""
    return model._data.get(key)


def group_by_key(models: Any, key: str) -> Dict[Any, List["Model"]]:
    groups: Dict[Any, List["Model"]] = {}
    for model in models:
        groups.setdefault(key_of(model, key), []).append(model)
    return groups
