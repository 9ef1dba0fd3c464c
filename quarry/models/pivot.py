"""
Quarry Pivot — a row of a many-to-many intermediate table.

``BelongsToMany`` builds pivots for the ``middle`` table named in the
relation; subclass ``Pivot`` (and pass the class as ``middle``) to give
the intermediate table its own casts, timestamps or accessors.

Usage:
    class UserRole(Pivot):
        class Meta:
            table = "user_role"
            auto_write_timestamp = "datetime"

    class User(Model):
        @relationship
        def roles(self):
            return self.belongs_to_many(Role, UserRole)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from ..utils import snake
from .base import Model

if TYPE_CHECKING:
    from ..db.connection import Connection
    from ..db.query import BaseQuery

__all__ = ["Pivot"]


class Pivot(Model):
    """Intermediate table row; bound to the model it was loaded for."""

    class Meta:
        pk = None
        auto_write_timestamp = False

    def __init__(self, data: Optional[Dict[str, Any]] = None, parent: Optional[Model] = None,
                 table: str = ""):
        self._pivot_table = table
        if parent is not None:
            self._registry = parent._registry
        super().__init__(data)
        if parent is not None:
            self._connection = parent._connection
            self.set_parent(parent)

    def _new_model(self, data: Optional[Dict[str, Any]]) -> "Pivot":
        return type(self)(data, self.get_parent(), self._pivot_table)

    def get_table(self) -> str:
        if not self._pivot_table:
            return super().get_table()
        prefix = self.get_connection().get_config("prefix") or ""
        return prefix + snake(self._pivot_table)

    def _bind_table(self, connection: "Connection") -> "BaseQuery":
        if self._pivot_table:
            return connection.name(self._pivot_table)
        return super()._bind_table(connection)
