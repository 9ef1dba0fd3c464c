"""
Quarry HasOneThrough — one related row reached through an intermediate model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

from .base import key_of
from .has_many_through import HasManyThrough

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["HasOneThrough"]


class HasOneThrough(HasManyThrough):
    """At most one related row reached through ``through``."""

    def get_relation(self, subs: Optional[List[str]] = None, closure: Any = None) -> Any:
        if closure is not None:
            self.query.call_modifier(closure, self)
        if key_of(self.parent, self.local_key) is None:
            return self._default_model()
        model = self.get_query().with_(subs or []).find()
        if model is None:
            return self._default_model()
        model.set_parent(self.parent)
        return model

    def with_query_set(self, models: List["Model"], relation: str, subs: List[str],
                       closure: Any, cache: Any = None, join: bool = False) -> None:
        groups = self._eager_groups(models, subs, closure, cache)
        for model in models:
            rows = groups.get(key_of(model, self.local_key))
            value = rows[0] if rows else self._default_model()
            if value is not None:
                value.set_parent(model)
            model.set_relation(relation, value)
