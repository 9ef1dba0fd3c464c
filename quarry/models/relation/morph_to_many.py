"""
Quarry MorphToMany — polymorphic many-to-many.

The pivot row stores the owner as ``morph_key`` / ``morph_type`` and the
related row as ``local_key``; every pivot query is constrained to the
parent's type.

Usage:
    class Post(Model):
        @relationship
        def tags(self):
            return self.morph_to_many(Tag, "taggables", "taggable")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from .belongs_to_many import BelongsToMany

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["MorphToMany"]


class MorphToMany(BelongsToMany):
    """Many-to-many through a pivot table shared by several owner types."""

    def __init__(self, parent: "Model", model: Any, middle: Any, morph_type: str, morph_key: str,
                 local_key: str, type: str):
        super().__init__(parent, model, middle, local_key, morph_key)
        self.morph_type = morph_type
        self.morph_key = morph_key
        self.type = type

    def _pivot_condition(self, query: Any, prefix: str) -> None:
        query.where(f"{prefix}{self.morph_type}", self.type)

    def _pivot_where(self, parent_key: Any, id: Any) -> Dict[str, Any]:
        where = super()._pivot_where(parent_key, id)
        where[self.morph_type] = self.type
        return where
