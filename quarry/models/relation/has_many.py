"""
Quarry HasMany — ``related.foreign_key = parent.local_key``, many rows.

Usage:
    user.posts                                # Collection
    user.related("posts").where("status", 1).select()
    user.related("posts").save({"title": "hello"})
    User.query().with_({"posts": lambda rel: rel.with_limit(3)}).select()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .base import Relation, key_of

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["HasMany"]


class HasMany(Relation):
    """The parent owns any number of related rows."""

    def __init__(self, parent: "Model", model: Any, foreign_key: str, local_key: str):
        super().__init__(parent, model)
        self.foreign_key = foreign_key
        self.local_key = local_key

    def _base_query(self) -> None:
        value = key_of(self.parent, self.local_key)
        if value is not None:
            self.query.where(self.foreign_key, value)

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        value = key_of(self.parent, self.local_key)
        if value is None:
            return self.get_model().to_collection([])

        self._base_applied = True
        if closure is not None:
            self.query.call_modifier(closure, self)
        self._apply_fields((self.foreign_key,))
        if self._with_limit:
            self.query.limit(self._with_limit)

        models = self.query.where(self.foreign_key, value).with_(subs or []).select()
        for model in models:
            model.set_parent(self.parent)
        return models

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        keys = self._unique([key_of(model, self.local_key) for model in models])
        groups: Dict[Any, List["Model"]] = {}
        if keys:
            self._prepare_eager(closure, cache, (self.foreign_key,))
            for row in self.query.where_in(self.foreign_key, keys).with_(subs).select():
                groups.setdefault(key_of(row, self.foreign_key), []).append(row)

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
        query = self.query.alias(alias).where_column(
            f"{alias}.{self.foreign_key}", "=", f"{parent_table}.{self.local_key}"
        )
        return self._aggregate(query.fetch_sql(), aggregate, field)

    def get_relation_aggregate(self, result: "Model", closure: Any, aggregate: str, field: str) -> Any:
        value = key_of(result, self.local_key)
        if value is None:
            return 0
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        return self._aggregate(self.query.where(self.foreign_key, value), aggregate, field)

    # ── Writes ───────────────────────────────────────────────────────

    def make(self, data: Union[Dict[str, Any], "Model", None] = None) -> "Model":
        """A new related model carrying the parent key (not saved)."""
        value = key_of(self.parent, self.local_key)
        if hasattr(data, "get_change_data"):
            data.set(self.foreign_key, value)
            return data
        return self.model({**(data or {}), self.foreign_key: value})

    def save(self, data: Union[Dict[str, Any], "Model"], replace: bool = True):
        """Save one related row; returns the model, or ``False`` when cancelled."""
        model = self.make(data)
        return model if model.replace(replace).save() else False

    def create(self, data: Dict[str, Any]) -> "Model":
        model = self.make()
        model.save(data)
        return model

    def save_all(self, dataset: List[Union[Dict[str, Any], "Model"]], replace: bool = True) -> List[Any]:
        """Save several related rows in one transaction."""
        result: List[Any] = []
        self.query.start_trans()
        try:
            for data in dataset:
                result.append(self.save(data, replace))
            self.query.commit()
        except Exception:
            self.query.rollback()
            raise
        return result

    # ── has / has_where ──────────────────────────────────────────────

    def has(self, operator: str = ">=", count: int = 1, id: str = "*", join_type: str = "",
            query: Any = None):
        """Parents with ``count(related) <operator> count``."""
        parent_alias, related_alias = self._aliases()
        table = self.query.get_table()
        if id != "*" and "." not in id:
            id = f"{related_alias}.{id}"

        query = query if query is not None else self.parent.db()
        self._alias_parent(query, parent_alias).field(f"{parent_alias}.*")
        query.join(
            {table: related_alias},
            f"{parent_alias}.{self.local_key}={related_alias}.{self.foreign_key}",
            join_type or "INNER",
        )
        self._soft_delete_where(query, related_alias)
        return query.group(f"{related_alias}.{self.foreign_key}").having(f"count({id}){operator}{int(count)}")

    def has_where(self, where: Any = None, fields: Any = None, join_type: str = "", query: Any = None):
        """Parents with a related row matching ``where`` (each parent once)."""
        parent_alias, related_alias = self._aliases()
        table = self.query.get_table()
        condition = self._has_where_condition(where, related_alias)

        query = query if query is not None else self.parent.db()
        self._alias_parent(query, parent_alias).group(f"{parent_alias}.{self.local_key}")
        query.field(self._relation_fields(fields, parent_alias))
        query.join(
            {table: related_alias},
            f"{parent_alias}.{self.local_key}={related_alias}.{self.foreign_key}",
            join_type or "INNER",
        )
        self._soft_delete_where(query, related_alias)
        if condition:
            query.where(condition)
        return query
