"""
Quarry HasOne — ``related.foreign_key = parent.local_key``, one row.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Tuple, Union

from .base import key_of
from .one_to_one import OneToOne

if TYPE_CHECKING:
    from ..base import Model

__all__ = ["HasOne"]


class HasOne(OneToOne):
    """The parent owns at most one related row."""

    def __init__(self, parent: "Model", model: Any, foreign_key: str, local_key: str):
        super().__init__(parent, model)
        self.foreign_key = foreign_key
        self.local_key = local_key

    def _eager_keys(self) -> Tuple[str, str]:
        return self.local_key, self.foreign_key

    def make(self, data: Union[Dict[str, Any], "Model", None] = None) -> "Model":
        """A new related model carrying the parent key (not saved)."""
        value = key_of(self.parent, self.local_key)
        if hasattr(data, "get_change_data"):
            data.set(self.foreign_key, value)
            return data
        return self.model({**(data or {}), self.foreign_key: value})

    def save(self, data: Union[Dict[str, Any], "Model"], replace: bool = True):
        """Save the related row; returns the model, or ``False`` when cancelled."""
        model = self.make(data)
        return model if model.replace(replace).save() else False
