"""
Quarry One-to-One Relations — shared behaviour of ``HasOne`` and ``BelongsTo``.

Besides the batched IN loading every relation supports, a one-to-one
relation can be JOIN loaded: ``eagerly`` adds a JOIN to the parent query
selecting the related columns as ``<relation>__<column>``, and
``_match`` splits those columns back into a related model.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ...faults import RelationFault
from ...utils import class_basename, snake
from .base import Relation, key_of

if TYPE_CHECKING:
    from ..base import Model

logger = logging.getLogger("quarry.models.relation")

__all__ = ["OneToOne"]


class OneToOne(Relation):
    """A relation resolving to at most one related model."""

    def __init__(self, parent: "Model", model: Any):
        super().__init__(parent, model)
        self._join_type = "INNER"
        self._bind_attr: Union[List[str], Dict[str, str], None] = None

    def join_type(self, type: str) -> "OneToOne":
        """JOIN type used by ``with_join`` (default ``INNER``)."""
        self._join_type = type
        return self

    def bind(self, attrs: Union[List[str], Dict[str, str]]) -> "OneToOne":
        """
        Copy the listed related attributes onto the parent instead of
        storing the related model: ``bind(["email"])`` or
        ``bind({"nick": "name"})``.
        """
        self._bind_attr = attrs
        return self

    def get_bind_attr(self) -> Union[List[str], Dict[str, str], None]:
        return self._bind_attr

    # ── JOIN loading ─────────────────────────────────────────────────

    def eagerly(self, query: Any, relation: str, field: Any, join_type: str = "",
                closure: Any = None, first: bool = False) -> None:
        """Add the JOIN for this relation to the parent ``query``."""
        parent_alias = snake(class_basename(type(self.parent)))
        if first:
            table = query.get_table()
            query.table({table: parent_alias})
            master_field = query.get_options("field") or True
            query.remove_option("field")
            query.table_field(master_field, table, parent_alias)

        parent_key, related_key = self._eager_keys()
        join_table = self.query.get_table()
        query.via(relation)
        if closure is not None:
            query.call_modifier(closure, query)
            if self._with_field:
                field = self._with_field

        on = f"{parent_alias}.{parent_key}={relation}.{related_key}"
        query.join({join_table: relation}, on, join_type or self._join_type)
        query.table_field(field, join_table, relation, f"{relation}__")

    def _match(self, result: "Model", relation: str) -> None:
        prefix = f"{relation}__"
        data: Dict[str, Any] = {}
        for key in [key for key in result._data if key.startswith(prefix)]:
            data[key[len(prefix):]] = result._data.pop(key)
            result._origin.pop(key, None)
            result._get.pop(key, None)

        if data and any(value is not None for value in data.values()):
            model = self.get_model().new_instance(data)
        else:
            model = self._default_model()
        self._attach(result, relation, model)

    # ── Shared loading ───────────────────────────────────────────────

    def _attach(self, result: "Model", relation: str, model: Optional["Model"]) -> None:
        """Store ``model`` as ``relation`` on ``result`` (or bind its attributes)."""
        if model is not None and hasattr(model, "set_parent"):
            model.set_parent(result)
        if self._bind_attr:
            self._bind_to(result, model)
        else:
            result.set_relation(relation, model)

    def _bind_to(self, result: "Model", model: Optional["Model"]) -> None:
        attrs = self._bind_attr or []
        items = attrs.items() if isinstance(attrs, dict) else ((attr, attr) for attr in attrs)
        for key, attr in items:
            if result._data.get(key) is not None:
                raise RelationFault(f"bind attr has exists:{key}")
            result.set(key, model.get_attr(attr) if model is not None else None)

    def _eager_one(self, models: List["Model"], relation: str, parent_key: str, related_key: str,
                   subs: List[str], closure: Any, cache: Any) -> None:
        """IN load: ``related.related_key IN (parent.parent_key, ...)``."""
        keys = self._unique([key_of(model, parent_key) for model in models])
        found: Dict[Any, "Model"] = {}
        if keys:
            self._prepare_eager(closure, cache, (related_key,))
            for row in self.query.where_in(related_key, keys).with_(subs).select():
                found.setdefault(key_of(row, related_key), row)

        for model in models:
            value = found.get(key_of(model, parent_key))
            self._attach(model, relation, value if value is not None else self._default_model())

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        if join:
            for model in models:
                self._match(model, relation)
            return
        self._eager_one(models, relation, *self._eager_keys(), subs, closure, cache)

    def _eager_keys(self):
        """``(parent_key, related_key)`` matched by IN loading."""
        raise NotImplementedError

    def _find_related(self, value: Any, subs: Optional[List[str]], closure: Any) -> Optional["Model"]:
        parent_key, related_key = self._eager_keys()
        if value is None:
            return self._default_model()
        self._base_applied = True
        if closure is not None:
            self.query.call_modifier(closure, self)
        self._apply_fields((related_key,))
        model = self.query.remove_where_field(related_key).where(related_key, value).with_(subs or []).find()
        if model is None:
            return self._default_model()
        model.set_parent(self.parent)
        return model

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        parent_key, _ = self._eager_keys()
        model = self._find_related(key_of(self.parent, parent_key), subs, closure)
        if self._bind_attr:
            self._bind_to(self.parent, model)
        return model

    def _base_query(self) -> None:
        parent_key, related_key = self._eager_keys()
        value = key_of(self.parent, parent_key)
        if value is not None:
            self.query.where(related_key, value)

    # ── Aggregates ───────────────────────────────────────────────────

    def get_relation_aggregate_query(self, closure: Any, aggregate: str, field: str) -> str:
        parent_key, related_key = self._eager_keys()
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        alias = f"{aggregate.lower()}_table"
        parent_table = self.parent.get_table()
        query = self.query.alias(alias).where_column(f"{alias}.{related_key}", "=", f"{parent_table}.{parent_key}")
        return self._aggregate(query.fetch_sql(), aggregate, field)

    def get_relation_aggregate(self, result: "Model", closure: Any, aggregate: str, field: str) -> Any:
        parent_key, related_key = self._eager_keys()
        value = key_of(result, parent_key)
        if value is None:
            return 0
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        return self._aggregate(self.query.where(related_key, value), aggregate, field)

    # ── has / has_where ──────────────────────────────────────────────

    def has(self, operator: str = ">=", count: int = 1, id: str = "*", join_type: str = "",
            query: Any = None):
        """Parents with a related row, as an ``EXISTS`` sub-query."""
        parent_key, related_key = self._eager_keys()
        parent_alias, related_alias = self._aliases()
        table = self.query.get_table()
        query = query if query is not None else self.parent.db()

        def exists(sub: Any) -> None:
            sub.table({table: related_alias}).field(f"{related_alias}.{related_key}")
            sub.where_column(f"{parent_alias}.{parent_key}", "=", f"{related_alias}.{related_key}")
            self._soft_delete_where(sub, related_alias)

        return self._alias_parent(query, parent_alias).where_exists(exists)

    def has_where(self, where: Any = None, fields: Any = None, join_type: str = "", query: Any = None):
        """Parents joined to related rows matching ``where``."""
        parent_key, related_key = self._eager_keys()
        parent_alias, related_alias = self._aliases()
        table = self.query.get_table()
        condition = self._has_where_condition(where, related_alias)
        query = query if query is not None else self.parent.db()
        self._alias_parent(query, parent_alias).field(self._relation_fields(fields, parent_alias))
        query.join(
            {table: related_alias},
            f"{parent_alias}.{parent_key}={related_alias}.{related_key}",
            join_type or self._join_type,
        )
        self._soft_delete_where(query, related_alias)
        if condition:
            query.where(condition)
        return query
