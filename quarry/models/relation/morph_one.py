"""
Quarry MorphOne — polymorphic one-to-one.

The related table stores the owner in two columns: ``morph_key`` (the
owner's primary key) and ``morph_type`` (the owner's type name, a class
name or a registry morph map alias).

Usage:
    class Post(Model):
        @relationship
        def image(self):
            return self.morph_one(Image, "imageable")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .base import Relation, key_of

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["MorphOne"]


class MorphOne(Relation):
    """The parent owns at most one row of a polymorphic table."""

    def __init__(self, parent: "Model", model: Any, foreign_key: str, morph_type: str, type: str):
        super().__init__(parent, model)
        self.foreign_key = foreign_key
        self.morph_type = morph_type
        self.type = type
        self.local_key = parent.get_pk()

    def _base_query(self) -> None:
        self.query.where(self.foreign_key, key_of(self.parent, self.local_key)).where(self.morph_type, self.type)

    def _eager_rows(self, models: List["Model"], subs: List[str], closure: Any,
                    cache: Any) -> Dict[Any, List["Model"]]:
        keys = self._unique([key_of(model, self.local_key) for model in models])
        groups: Dict[Any, List["Model"]] = {}
        if not keys:
            return groups
        self._prepare_eager(closure, cache, (self.foreign_key,))
        query = self.query.where_in(self.foreign_key, keys).where(self.morph_type, self.type)
        for row in query.with_(subs).select():
            groups.setdefault(key_of(row, self.foreign_key), []).append(row)
        return groups

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        if key_of(self.parent, self.local_key) is None:
            return self._default_model()
        if closure is not None:
            self.query.call_modifier(closure, self)
        model = self.get_query().with_(subs or []).find()
        if model is None:
            return self._default_model()
        model.set_parent(self.parent)
        return model

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        groups = self._eager_rows(models, subs, closure, cache)
        for model in models:
            rows = groups.get(key_of(model, self.local_key))
            value = rows[0] if rows else self._default_model()
            if value is not None:
                value.set_parent(model)
            model.set_relation(relation, value)

    # ── Aggregates ───────────────────────────────────────────────────

    def get_relation_aggregate_query(self, closure: Any, aggregate: str, field: str) -> str:
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        alias = f"{aggregate.lower()}_table"
        parent_table = self.parent.get_table()
        query = self.query.alias(alias).where_column(
            f"{alias}.{self.foreign_key}", "=", f"{parent_table}.{self.local_key}"
        )
        query.where(f"{alias}.{self.morph_type}", self.type)
        return self._aggregate(query.fetch_sql(), aggregate, field)

    def get_relation_aggregate(self, result: "Model", closure: Any, aggregate: str, field: str) -> Any:
        value = key_of(result, self.local_key)
        if value is None:
            return 0
        if closure is not None:
            self.query.call_modifier(closure, self.query)
        query = self.query.where(self.foreign_key, value).where(self.morph_type, self.type)
        return self._aggregate(query, aggregate, field)

    # ── Writes ───────────────────────────────────────────────────────

    def make(self, data: Union[Dict[str, Any], "Model", None] = None) -> "Model":
        """A new related model carrying the owner columns (not saved)."""
        owner = {self.foreign_key: key_of(self.parent, self.local_key), self.morph_type: self.type}
        if hasattr(data, "get_change_data"):
            for key, value in owner.items():
                data.set(key, value)
            return data
        return self.model({**(data or {}), **owner})

    def save(self, data: Union[Dict[str, Any], "Model"], replace: bool = True):
        model = self.make(data)
        return model if model.replace(replace).save() else False
