"""
Quarry MorphMany — polymorphic one-to-many.

Usage:
    class Post(Model):
        @relationship
        def comments(self):
            return self.morph_many(Comment, "commentable")

    post.related("comments").save({"content": "first"})
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .base import key_of
from .morph_one import MorphOne

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["MorphMany"]


class MorphMany(MorphOne):
    """The parent owns any number of rows of a polymorphic table."""

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        if key_of(self.parent, self.local_key) is None:
            return self.get_model().to_collection([])
        if closure is not None:
            self.query.call_modifier(closure, self)
        query = self.get_query()
        if self._with_limit:
            query.limit(self._with_limit)
        models = query.with_(subs or []).select()
        for model in models:
            model.set_parent(self.parent)
        return models

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        groups = self._eager_rows(models, subs, closure, cache)
        for model in models:
            rows = groups.get(key_of(model, self.local_key), [])
            if self._with_limit:
                rows = rows[:self._with_limit]
            for row in rows:
                row.set_parent(model)
            model.set_relation(relation, self.get_model().to_collection(rows))

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
