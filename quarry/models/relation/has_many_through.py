"""
Quarry HasManyThrough — related rows reached through an intermediate model.

``through.foreign_key = parent.local_key`` and
``related.through_key = through.through_pk``. A lazy load is a single
JOIN query; eager loading runs two batched queries (the intermediate
table, then the related table) and stitches the keys in Python.

Usage:
    class Country(Model):
        @relationship
        def posts(self):
            return self.has_many_through(Post, User)   # post.user_id -> user.country_id
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Type

from ...utils import class_basename, snake
from .base import Relation, key_of

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["HasManyThrough"]


class HasManyThrough(Relation):
    """Any number of related rows reached through ``through``."""

    def __init__(self, parent: "Model", model: Any, through: Type["Model"], foreign_key: str,
                 through_key: str, local_key: str, through_pk: str):
        super().__init__(parent, model)
        self.through = through
        self.foreign_key = foreign_key
        self.through_key = through_key
        self.local_key = local_key
        self.through_pk = through_pk

    def _through_table(self) -> str:
        return self.through().db().get_table()

    def _base_query(self) -> None:
        value = key_of(self.parent, self.local_key)
        alias = snake(class_basename(self.model))
        through_table = self._through_table()
        self.query.alias(alias).field(f"{alias}.*")
        self.query.join(
            {through_table: "through_table"},
            f"through_table.{self.through_pk}={alias}.{self.through_key}",
        )
        self.query.where(f"through_table.{self.foreign_key}", value)

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        if closure is not None:
            self.query.call_modifier(closure, self)
        self.get_query()
        if self._with_limit:
            self.query.limit(self._with_limit)
        models = self.query.with_(subs or []).select()
        for model in models:
            model.set_parent(self.parent)
        return models

    # ── Eager loading ────────────────────────────────────────────────

    def _eager_groups(self, models: List["Model"], subs: List[str], closure: Any,
                      cache: Any) -> Dict[Any, List["Model"]]:
        """``{parent local key: [related rows]}`` from two batched queries."""
        keys = self._unique([key_of(model, self.local_key) for model in models])
        if not keys:
            return {}

        owners: Dict[Any, Any] = {}
        through = self.through().db().field([self.through_pk, self.foreign_key])
        for row in through.where_in(self.foreign_key, keys).select():
            owners[key_of(row, self.through_pk)] = key_of(row, self.foreign_key)
        if not owners:
            return {}

        self._prepare_eager(closure, cache, (self.through_key,))
        groups: Dict[Any, List["Model"]] = {}
        for row in self.query.where_in(self.through_key, list(owners)).with_(subs).select():
            groups.setdefault(owners.get(key_of(row, self.through_key)), []).append(row)
        return groups

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        groups = self._eager_groups(models, subs, closure, cache)
        for model in models:
            rows = groups.get(key_of(model, self.local_key), [])
            if self._with_limit:
                rows = rows[:self._with_limit]
            for row in rows:
                row.set_parent(model)
            model.set_relation(relation, self.get_model().to_collection(rows))

    # ── Aggregates ───────────────────────────────────────────────────

    def get_relation_aggregate_query(self, closure: Any, aggregate: str, field: str) -> str:
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        alias = f"{aggregate.lower()}_table"
        parent_table = self.parent.get_table()
        query = self.query.alias(alias).join(
            {self._through_table(): "through_table"},
            f"through_table.{self.through_pk}={alias}.{self.through_key}",
        )
        query.where_column(f"through_table.{self.foreign_key}", "=", f"{parent_table}.{self.local_key}")
        return self._aggregate(query.fetch_sql(), aggregate, field)

    def get_relation_aggregate(self, result: "Model", closure: Any, aggregate: str, field: str) -> Any:
        if key_of(result, self.local_key) is None:
            return 0
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        return self._aggregate(self.get_query(), aggregate, field)

    # ── has / has_where ──────────────────────────────────────────────

    def _join_through(self, query: Any, join_type: str = "") -> Tuple[str, str]:
        parent_alias, related_alias = self._aliases()
        self._alias_parent(query, parent_alias)
        query.join(
            {self._through_table(): "through_table"},
            f"through_table.{self.foreign_key}={parent_alias}.{self.local_key}",
            join_type or "INNER",
        )
        query.join(
            {self.query.get_table(): related_alias},
            f"{related_alias}.{self.through_key}=through_table.{self.through_pk}",
            join_type or "INNER",
        )
        self._soft_delete_where(query, related_alias)
        return parent_alias, related_alias

    def has(self, operator: str = ">=", count: int = 1, id: str = "*", join_type: str = "",
            query: Any = None):
        query = query if query is not None else self.parent.db()
        parent_alias, related_alias = self._join_through(query, join_type)
        if id != "*" and "." not in id:
            id = f"{related_alias}.{id}"
        query.field(f"{parent_alias}.*").group(f"{parent_alias}.{self.local_key}")
        return query.having(f"count({id}){operator}{int(count)}")

    def has_where(self, where: Any = None, fields: Any = None, join_type: str = "", query: Any = None):
        _, related_alias = self._aliases()
        condition = self._has_where_condition(where, related_alias)
        query = query if query is not None else self.parent.db()
        parent_alias, _ = self._join_through(query, join_type)
        query.field(self._relation_fields(fields, parent_alias)).group(f"{parent_alias}.{self.local_key}")
        if condition:
            query.where(condition)
        return query
