"""
Quarry BelongsTo — ``parent.foreign_key = related.local_key``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Tuple

from .base import key_of
from .one_to_one import OneToOne

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["BelongsTo"]


class BelongsTo(OneToOne):
    """The parent row references its owner."""

    def __init__(self, parent: "Model", model: Any, foreign_key: str, local_key: str, relation: str = ""):
        super().__init__(parent, model)
        self.foreign_key = foreign_key
        self.local_key = local_key
        self.relation = relation

    def _eager_keys(self) -> Tuple[str, str]:
        return self.foreign_key, self.local_key

    def associate(self, model: "Model") -> "Model":
        """Point the parent at ``model`` (the parent is not saved)."""
        parent = self.parent
        parent.set(self.foreign_key, key_of(model, self.local_key))
        if self.relation:
            parent.set_relation(self.relation, model)
        return parent

    def dissociate(self) -> "Model":
        """Clear the parent's reference (the parent is not saved)."""
        parent = self.parent
        parent.set(self.foreign_key, None)
        if self.relation:
            parent.set_relation(self.relation, None)
        return parent
