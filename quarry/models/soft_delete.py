"""
Quarry Soft Delete — mark rows deleted instead of removing them.

Enabled with ``Meta.soft_delete = True``. A deleted row carries a
timestamp in ``Meta.delete_time``; live rows hold
``Meta.default_soft_delete`` (``None`` -> ``IS NULL`` test). Every model
query hides deleted rows unless built with ``with_trashed()``.

Usage:
    post.delete()                 # UPDATE post SET delete_time = ...
    post.force().delete()         # real DELETE
    Post.only_trashed().select()
    Post.with_trashed().find(1).restore()
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

__all__ = ["SoftDelete"]

logger = logging.getLogger("quarry.models.soft_delete")


class SoftDelete:
    """Soft delete behaviour for ``Model``; inert unless ``Meta.soft_delete``."""

    def uses_soft_delete(self) -> bool:
        return bool(self._meta.soft_delete and self._meta.delete_time)

    def get_delete_time_field(self, read: bool = False) -> Optional[str]:
        """
        The delete time column; qualified with ``__TABLE__`` for reads so
        it stays unambiguous in joined queries.
        """
        field = self._meta.delete_time
        if not field:
            return None
        if read:
            return field if "." in field else f"__TABLE__.{field}"
        return field.split(".")[-1]

    def soft_delete_condition(self) -> List[Any]:
        default = self._meta.default_soft_delete
        if default is None:
            return ["NULL", ""]
        return ["=", default]

    def soft_delete_stamp(self) -> Any:
        """Value written to the delete time column by a soft delete."""
        return self.auto_write_timestamp()

    def trashed(self) -> bool:
        """Whether this row is soft deleted."""
        field = self.get_delete_time_field()
        if not field or not self.uses_soft_delete():
            return False
        value = self._data.get(field)
        return value is not None and value != self._meta.default_soft_delete

    @classmethod
    def with_trashed(cls):
        """A query that includes soft deleted rows."""
        return cls().with_trashed_data(True).db()

    @classmethod
    def only_trashed(cls):
        """A query over soft deleted rows only."""
        model = cls()
        query = model.with_trashed_data(True).db()
        field = model.get_delete_time_field(True)
        if not field or not model.uses_soft_delete():
            return query
        default = model._meta.default_soft_delete
        if default is None:
            return query.where_not_null(field)
        return query.where(field, "<>", default)

    def with_trashed_data(self, with_trashed: bool):
        self._with_trashed = with_trashed
        return self

    def _soft_delete(self) -> None:
        field = self.get_delete_time_field()
        self.set(field, self.soft_delete_stamp())
        self._exists = True
        self.with_event(False).save()
        self.with_event(True)

    def restore(self, where: Any = None) -> bool:
        """Clear the delete time of this row (or of the rows ``where`` matches)."""
        field = self.get_delete_time_field()
        if not field or not self.uses_soft_delete():
            return False
        if where is None:
            where = self.get_where()
        if self.trigger("before_restore") is False:
            return False

        default = self._meta.default_soft_delete
        self.with_trashed_data(True).db().where(where).update({field: default})
        self.with_trashed_data(False)
        self._data[field] = default
        self._sync_origin()
        self._get.pop(field, None)
        logger.debug(f"Restored {type(self).__name__} {self.get_key()!r}")

        self.trigger("after_restore")
        return True
