"""
Quarry Model Timestamps — automatic create / update time columns.

``Meta.auto_write_timestamp`` selects the stored representation:

- ``"int"``: Unix timestamp
- ``"datetime"`` / ``"timestamp"``: ``YYYY-MM-DD HH:MM:SS`` string
- ``"date"``: ``YYYY-MM-DD`` string
- ``True``: detected from the column type of the create time field
- falsy: disabled (``None`` falls back to the connection's
  ``auto_timestamp`` setting)

Reading a timestamp attribute formats it with ``Meta.date_format``
(``False`` returns the stored value untouched).
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Optional

from ..db.query.timerange import to_datetime

__all__ = ["TimeStamp"]

_STRING_FORMATS = {
    "datetime": "%Y-%m-%d %H:%M:%S",
    "timestamp": "%Y-%m-%d %H:%M:%S",
    "date": "%Y-%m-%d",
}


class TimeStamp:
    """Automatic timestamp columns for ``Model``."""

    def is_auto_write_timestamp(self, auto: Any) -> Any:
        """Override ``Meta.auto_write_timestamp`` for this instance."""
        self._auto_write_timestamp = auto
        return self

    def get_auto_write_timestamp(self) -> Any:
        """The effective timestamp type, or a falsy value when disabled."""
        auto = self._auto_write_timestamp
        if auto is None:
            auto = self.get_connection().get_config("auto_timestamp")
        if auto is True:
            auto = self._detect_timestamp_type()
        return auto

    def _detect_timestamp_type(self) -> str:
        field = self._meta.create_time or self._meta.update_time
        if not field:
            return "int"
        kind = self._meta.schema.get(field) if self._meta.schema else None
        if kind is None:
            kind = self.db().get_field_type(field)
        kind = str(kind or "int").lower()
        for name in ("datetime", "timestamp", "date"):
            if name in kind:
                return name
        return "int"

    def _is_time_field(self, name: str) -> bool:
        if name not in self._meta.time_fields:
            return False
        return bool(self.get_auto_write_timestamp())

    def auto_write_timestamp(self) -> Any:
        """The current time in the configured representation."""
        kind = self.get_auto_write_timestamp()
        fmt = _STRING_FORMATS.get(str(kind).lower()) if isinstance(kind, str) else None
        if fmt:
            return datetime.now().strftime(fmt)
        return int(time.time())

    def get_timestamp_value(self, value: Any) -> Any:
        """Format a stored timestamp for reading."""
        date_format: Optional[str] = self._meta.date_format
        if value is None or not date_format:
            return value
        parsed = to_datetime(value)
        if parsed is None:
            return value
        return parsed.strftime(date_format)

    def _write_timestamps(self, data: dict, fields: Any) -> None:
        if not self.get_auto_write_timestamp():
            return
        for field in fields:
            if field and field not in data:
                value = self.auto_write_timestamp()
                data[field] = value
                self._data[field] = value
                self._get.pop(field, None)
