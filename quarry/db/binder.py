"""
Quarry Parameter Binder — named bind table for one statement.

Every value that reaches the driver goes through a ``ParamsBinder``.
Unnamed values receive a generated name of the form ``Bind{N}_{rand}_``
so binding the same column twice (BETWEEN, IN, repeated WHERE) never
collides. Positional ``?`` and ``:name`` placeholders in user supplied
SQL are rewritten to those generated names.

The binder also renders the "real SQL" used for logging and
``fetch_sql()``: every placeholder replaced by its escaped literal.
"""

from __future__ import annotations

import random
import re
from typing import Any, Dict, List, Optional, Tuple, Union

__all__ = [
    "ParamsBinder",
    "PARAM_STR",
    "PARAM_INT",
    "PARAM_BOOL",
    "PARAM_FLOAT",
    "BIND_TYPE_MAP",
    "render_real_sql",
    "bind_type_of",
]

PARAM_STR = "str"
PARAM_INT = "int"
PARAM_BOOL = "bool"
PARAM_FLOAT = "float"

# Column semantic type -> bind type tag
BIND_TYPE_MAP: Dict[str, str] = {
    "str": PARAM_STR,
    "string": PARAM_STR,
    "int": PARAM_INT,
    "integer": PARAM_INT,
    "bool": PARAM_BOOL,
    "boolean": PARAM_BOOL,
    "float": PARAM_FLOAT,
    "date": PARAM_STR,
    "datetime": PARAM_STR,
    "timestamp": PARAM_STR,
}

BindEntry = Tuple[Any, str]

_BIND_TYPES = frozenset((PARAM_STR, PARAM_INT, PARAM_BOOL, PARAM_FLOAT))


def _is_typed(item: Any) -> bool:
    return isinstance(item, (tuple, list)) and len(item) in (2, 3) and item[1] in _BIND_TYPES


def bind_type_of(field_type: Optional[str]) -> str:
    """Map a column's semantic type to its bind type tag."""
    if not field_type:
        return PARAM_STR
    return BIND_TYPE_MAP.get(str(field_type).lower(), PARAM_STR)


def _placeholder_re(name: str) -> re.Pattern:
    return re.compile(r":" + re.escape(name) + r"(?![A-Za-z0-9_])")


class ParamsBinder:
    """
    Ordered bind table: name -> (value, type tag).

    Usage:
        binder = ParamsBinder()
        name = binder.bind_value(10, PARAM_INT)      # 'Bind1_83421_'
        sql = binder.bind_params("id > ? AND name = :n", [5])
    """

    __slots__ = ("_bind",)

    def __init__(self) -> None:
        self._bind: Dict[str, BindEntry] = {}

    def bind(self, value: Union[Dict[str, Any], List[Any]]) -> "ParamsBinder":
        """Merge a dict of pre-named binds into the table."""
        if isinstance(value, dict):
            for key, item in value.items():
                self._bind[key] = self._normalize(item)
        else:
            for item in value:
                self.bind_value(*self._normalize(item))
        return self

    def bind_value(self, value: Any, type: Optional[str] = None, name: Optional[str] = None) -> str:
        """Register one value and return its placeholder name."""
        name = name or f"Bind{len(self._bind) + 1}_{random.randint(1, 2147483647)}_"
        self._bind[name] = (value, type or PARAM_STR)
        return name

    def is_bind(self, key: str) -> bool:
        return key in self._bind

    def get_bind(self, clear: bool = True) -> Dict[str, BindEntry]:
        bind = dict(self._bind)
        if clear:
            self._bind = {}
        return bind

    def bind_params(self, sql: str, bind: Union[Dict[str, Any], List[Any], None] = None) -> str:
        """
        Bind ``bind`` and rewrite the placeholders of ``sql`` to the
        generated names.

        A list binds positional ``?`` placeholders left to right; a dict
        binds ``:key`` placeholders. Entries may be plain values or
        ``(value, type)`` / ``(value, type, name)`` tuples.
        """
        if not bind:
            return sql
        items = bind.items() if isinstance(bind, dict) else enumerate(bind)
        for key, value in items:
            if _is_typed(value):
                name = self.bind_value(value[0], value[1], value[2] if len(value) == 3 else None)
            else:
                name = self.bind_value(value)
            if isinstance(key, int):
                pos = sql.find("?")
                if pos != -1:
                    sql = sql[:pos] + ":" + name + sql[pos + 1:]
            else:
                sql = _placeholder_re(str(key)).sub(":" + name, sql)
        return sql

    def copy(self) -> "ParamsBinder":
        clone = ParamsBinder()
        clone._bind = dict(self._bind)
        return clone

    @staticmethod
    def _normalize(item: Any) -> BindEntry:
        if _is_typed(item):
            return item[0], item[1]
        return item, PARAM_STR

    def __len__(self) -> int:
        return len(self._bind)

    def __repr__(self) -> str:
        return f"<ParamsBinder binds={len(self._bind)}>"


def _literal(value: Any, type: str) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if type == PARAM_INT:
        text = str(value)
        return "0" if text == "" else text
    if type == PARAM_BOOL:
        return "1" if value else "0"
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def render_real_sql(sql: str, bind: Union[Dict[str, Any], List[Any], None]) -> str:
    """
    Substitute bind values into ``sql`` as escaped literals.

    Only for logging and ``fetch_sql()``; never executed.
    """
    if not bind:
        return sql
    items = bind.items() if isinstance(bind, dict) else enumerate(bind)
    for key, val in items:
        if _is_typed(val):
            value, type = val[0], val[1]
        else:
            value, type = val, PARAM_STR
        literal = _literal(value, type)
        if isinstance(key, int):
            pos = sql.find("?")
            if pos != -1:
                sql = sql[:pos] + literal + sql[pos + 1:]
        else:
            sql = _placeholder_re(str(key)).sub(lambda _m: literal, sql)
    return sql
