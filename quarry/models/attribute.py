"""
Quarry Model Attributes — data, origin, casts, accessors and mutators.

Reading an attribute goes through, in order: a ``with_attribute``
callback, an accessor method ``get_<name>_attr(value, data)``, the
declared cast, automatic timestamp formatting, then relation
resolution; anything else is the raw stored value. Writing goes
through a mutator ``set_<name>_attr(value, data)`` or the declared
cast.

Casts: ``int``, ``float`` (``float:2`` rounds), ``bool``, ``date``,
``datetime`` / ``timestamp`` (optionally ``datetime:%d/%m/%Y``),
``json``, ``array``, ``object``, ``serialize`` or a class (dotted path
or class object) constructed from the stored value.
"""

from __future__ import annotations

import copy
import json
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..db.query.timerange import to_datetime
from ..faults import InvalidArgumentFault
from ..utils import import_string

__all__ = ["Attribute", "read_transform", "write_transform"]

_SCALARS = (str, int, float, bool, bytes, Decimal, datetime, date, type(None))

_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _split_cast(cast: Any) -> Tuple[Any, Optional[str]]:
    if isinstance(cast, (list, tuple)):
        return cast[0], (cast[1] if len(cast) > 1 else None)
    if isinstance(cast, str) and ":" in cast:
        kind, param = cast.split(":", 1)
        return kind, param
    return cast, None


def _format(value: Any, fmt: Optional[str]) -> Any:
    parsed = to_datetime(value)
    if parsed is None:
        return value
    return parsed.strftime(fmt) if fmt else parsed


def read_transform(value: Any, cast: Any, date_format: Optional[str] = _DATETIME_FORMAT) -> Any:
    """Convert a stored value to its attribute value."""
    if value is None:
        return None
    kind, param = _split_cast(cast)

    if kind in ("int", "integer"):
        return int(value)
    if kind == "float":
        return round(float(value), int(param)) if param else float(value)
    if kind in ("bool", "boolean"):
        return value not in ("0", "", "false") and bool(value)
    if kind in ("timestamp", "datetime"):
        return _format(value, param or date_format)
    if kind == "date":
        parsed = to_datetime(value)
        return parsed.date() if parsed is not None else value
    if kind == "json":
        return json.loads(value) if isinstance(value, (str, bytes)) else value
    if kind == "array":
        if not value:
            return []
        return json.loads(value) if isinstance(value, (str, bytes)) else list(value)
    if kind == "object":
        if not value:
            return SimpleNamespace()
        if isinstance(value, (str, bytes)):
            return json.loads(value, object_hook=lambda d: SimpleNamespace(**d))
        return value
    if kind == "serialize":
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return None

    klass = import_string(kind) if isinstance(kind, str) and ("." in kind or ":" in kind) else kind
    if isinstance(klass, type):
        return value if isinstance(value, klass) else klass(value)
    return value


def write_transform(value: Any, cast: Any) -> Any:
    """Convert an attribute value to its stored value."""
    if value is None:
        return None
    kind, param = _split_cast(cast)

    if kind in ("int", "integer"):
        return int(value)
    if kind == "float":
        return round(float(value), int(param)) if param else float(value)
    if kind in ("bool", "boolean"):
        return bool(value)
    if kind == "array":
        return json.dumps(list(value) if not isinstance(value, (list, dict)) else value, ensure_ascii=False)
    if kind == "object":
        if isinstance(value, SimpleNamespace):
            value = vars(value)
        return json.dumps(value, ensure_ascii=False, default=lambda o: vars(o))
    if kind == "json":
        return json.dumps(value, ensure_ascii=False)
    if kind == "serialize":
        return json.dumps(value, ensure_ascii=False, default=str)
    if kind == "timestamp":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
        parsed = to_datetime(value)
        return int(parsed.timestamp()) if parsed is not None else value
    if kind == "datetime":
        parsed = to_datetime(value)
        return parsed.strftime(_DATETIME_FORMAT) if parsed is not None else value
    if kind == "date":
        parsed = to_datetime(value)
        return parsed.strftime("%Y-%m-%d") if parsed is not None else value

    if not isinstance(value, _SCALARS):
        return str(value)
    return value


def _snapshot(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``data`` whose mutable values are not shared."""
    return {
        key: value if isinstance(value, _SCALARS) else copy.deepcopy(value)
        for key, value in data.items()
    }


def _changed(value: Any, origin: Any) -> bool:
    if type(value) is not type(origin):
        return True
    try:
        return bool(value != origin)
    except Exception:
        return value is not origin


class Attribute:
    """Attribute storage and conversion for ``Model``."""

    _data: Dict[str, Any]
    _origin: Dict[str, Any]
    _get: Dict[str, Any]
    _relation: Dict[str, Any]
    _with_attr: Dict[str, Any]

    # ── Primary key ──────────────────────────────────────────────────

    def get_pk(self) -> Union[str, List[str]]:
        return self._meta.pk

    def is_pk(self, key: str) -> bool:
        pk = self.get_pk()
        if isinstance(pk, str):
            return pk == key
        return key in (pk or [])

    def get_key(self) -> Any:
        """Primary key value (single column primary keys only)."""
        pk = self.get_pk()
        if isinstance(pk, str):
            return self._data.get(pk)
        return None

    # ── Write filters ────────────────────────────────────────────────

    def allow_field(self, field: List[str]):
        """Restrict the columns written by ``save``."""
        self._field = list(field)
        return self

    def read_only(self, field: List[str]):
        """Columns never sent in an UPDATE."""
        self._readonly = list(field)
        return self

    # ── Data ─────────────────────────────────────────────────────────

    def data(self, data: Dict[str, Any], set: bool = False, allow: Optional[List[str]] = None):
        """
        Replace the data. ``set`` runs mutators and casts; ``allow``
        keeps only the listed keys.
        """
        data = {k: v for k, v in data.items() if k not in self._meta.disuse}
        if allow:
            data = {name: data[name] for name in allow if name in data}

        self._data = {}
        self._get = {}
        if set:
            self.set_attrs(data)
        else:
            self._data = dict(data)
        return self

    def append_data(self, data: Dict[str, Any], set: bool = False):
        """Merge ``data`` into the current data."""
        if set:
            self.set_attrs(data)
        else:
            self._data.update(data)
            for key in data:
                self._get.pop(key, None)
        return self

    def get_origin(self, name: Optional[str] = None) -> Any:
        if name is None:
            return self._origin
        return self._origin.get(name)

    def get_data(self, name: Optional[str] = None) -> Any:
        """
        Raw stored data, or one raw value (a loaded relation counts).

        Raises ``InvalidArgumentFault`` for an unknown name.
        """
        if name is None:
            return self._data
        if name in self._data:
            return self._data[name]
        if name in self._relation:
            return self._relation[name]
        raise InvalidArgumentFault(f"property not exists:{type(self).__name__}->{name}")

    def get_change_data(self) -> Dict[str, Any]:
        """Attributes that differ from the loaded origin, minus read-only ones."""
        if self._force:
            data = dict(self._data)
        else:
            data = {
                key: value for key, value in self._data.items()
                if key not in self._origin or _changed(value, self._origin[key])
            }
        for name in self._readonly:
            data.pop(name, None)
        return data

    def _sync_origin(self) -> None:
        self._origin = _snapshot(self._data)

    # ── Read ─────────────────────────────────────────────────────────

    def with_attribute(self, name: Any, callback: Optional[Callable[[Any, Dict[str, Any]], Any]] = None):
        """
        Transform attribute ``name`` on read with ``callback(value, data)``.

        ``"profile.city"`` reaches into a JSON column; a dict registers
        several callbacks at once.
        """
        if isinstance(name, dict):
            for key, value in name.items():
                self.with_attribute(key, value)
            return self
        if "." in name:
            name, key = name.split(".", 1)
            self._with_attr.setdefault(name, {})[key] = callback
        else:
            self._with_attr[name] = callback
        self._get.pop(name, None)
        return self

    def get_attr(self, name: str) -> Any:
        """The attribute value of ``name`` after accessors and casts."""
        relation = None
        try:
            value = self.get_data(name)
        except InvalidArgumentFault:
            relation = self._relation_method(name)
            if relation is None and name not in self._with_attr and not self._accessor(name):
                raise
            value = None

        if name in self._get:
            return self._get[name]

        accessor = self._accessor(name)
        casts = self._meta.casts
        if name in self._with_attr:
            if relation:
                value = self._get_relation_value(relation)
            transform = self._with_attr[name]
            if isinstance(transform, dict):
                value = self._get_json_value(name, value)
            elif transform is not None:
                value = transform(value, self._data)
        elif accessor is not None:
            if relation:
                value = self._get_relation_value(relation)
            value = accessor(value, self._data)
        elif name in casts:
            value = read_transform(value, casts[name], self._meta.date_format or None)
        elif self._is_time_field(name):
            value = self.get_timestamp_value(value)
        elif relation:
            value = self._get_relation_value(relation)
            self._relation[name] = value

        self._get[name] = value
        return value

    def _accessor(self, name: str) -> Optional[Callable[..., Any]]:
        return getattr(type(self), f"get_{name}_attr", None) and getattr(self, f"get_{name}_attr")

    def _get_json_value(self, name: str, value: Any) -> Any:
        for key, callback in self._with_attr[name].items():
            if isinstance(value, dict):
                value[key] = callback(value.get(key), self._data)
            elif value is not None:
                setattr(value, key, callback(getattr(value, key, None), self._data))
        return value

    # ── Write ────────────────────────────────────────────────────────

    def set_attrs(self, data: Dict[str, Any]) -> None:
        for name, value in data.items():
            self.set_attr(name, value, data)

    def set_attr(self, name: str, value: Any, data: Optional[Dict[str, Any]] = None) -> None:
        """Set attribute ``name`` through its mutator or cast."""
        mutator = getattr(type(self), f"set_{name}_attr", None)
        if mutator is not None:
            before = dict(self._data)
            value = getattr(self, f"set_{name}_attr")(value, {**self._data, **(data or {})})
            if value is None and before != self._data:
                self._get.pop(name, None)
                return
        elif name in self._meta.casts:
            value = write_transform(value, self._meta.casts[name])
        elif self._relation_method(name) is not None and _is_model_like(value):
            self._relation[name] = value
            self._get.pop(name, None)
            return

        self._data[name] = value
        self._get.pop(name, None)

    def set(self, name: str, value: Any) -> None:
        """Store ``value`` as is, bypassing mutators and casts."""
        self._data[name] = value
        self._get.pop(name, None)


def _is_model_like(value: Any) -> bool:
    return hasattr(value, "to_dict") and hasattr(value, "visible")
