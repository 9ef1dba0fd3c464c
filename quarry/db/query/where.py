"""
Quarry Where Parser — normalizes every ``where*`` call shape.

All condition helpers funnel into ``_parse_where_exp`` which appends one
canonical entry to ``options["where"][logic]``. An entry is one of:

- ``[field, operator, value]`` (optionally with a fourth override logic)
- a ``Raw`` expression
- a callable / ``QueryModifier`` rendered later as a nested ``( ... )``
- ``True`` (always true)
- a list whose first item is itself a list (an AND group)

Usage:
    query.where("status", 1)
    query.where("age", ">", 18).where_or("vip", 1)
    query.where({"type": [1, 2], "deleted": None})
    query.where(lambda q: q.where("a", 1).where_or("b", 2))
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence

from ..raw import Raw
from .options import call_modifier, is_modifier

__all__ = ["WhereQuery", "UNSET"]


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


# Distinguishes "argument not given" from an explicit ``None``
UNSET: Any = _Unset()

_RAW_FIELD_RE = re.compile(r"[,=<'\"(\s]")

_NULL_OPS = ("NULL", "NOT NULL", "NOTNULL")
_EXISTS_OPS = ("EXISTS", "NOT EXISTS", "NOTEXISTS")


class WhereQuery:
    """Condition building for ``BaseQuery``."""

    options: Dict[str, Any]

    def where(self, field: Any, op: Any = UNSET, condition: Any = UNSET, extra: Any = None):
        """
        Add an AND condition.

        Accepts ``(field, value)``, ``(field, op, value)``, a dict of
        equality/IN/NULL tests, a list of prepared entries, a callable,
        a ``Raw`` or another query whose conditions are copied.
        """
        if _is_query(field):
            return self._parse_query_where(field)
        if field is True:
            self.options.setdefault("where", {}).setdefault("AND", []).append(True)
            return self
        return self._parse_where_exp("AND", field, op, condition, extra)

    def where_or(self, field: Any, op: Any = UNSET, condition: Any = UNSET, extra: Any = None):
        return self._parse_where_exp("OR", field, op, condition, extra)

    def where_xor(self, field: Any, op: Any = UNSET, condition: Any = UNSET, extra: Any = None):
        return self._parse_where_exp("XOR", field, op, condition, extra)

    def _parse_query_where(self, query: Any):
        where = query.get_options("where") or {}
        own = self.options.setdefault("where", {})
        for logic, items in where.items():
            own.setdefault(logic, []).extend(items)
        via = query.get_options("via")
        if via:
            self.options["via"] = via
        self.bind(query.get_bind(False))
        return self

    # ── Shorthand helpers ────────────────────────────────────────────

    def where_null(self, field: str, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "NULL", None, strict=True)

    def where_not_null(self, field: str, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "NOTNULL", None, strict=True)

    def where_exists(self, condition: Any, logic: str = "AND"):
        if isinstance(condition, str):
            condition = Raw(condition)
        self.options.setdefault("where", {}).setdefault(logic.upper(), []).append(["", "EXISTS", condition])
        return self

    def where_not_exists(self, condition: Any, logic: str = "AND"):
        if isinstance(condition, str):
            condition = Raw(condition)
        self.options.setdefault("where", {}).setdefault(logic.upper(), []).append(["", "NOT EXISTS", condition])
        return self

    def where_in(self, field: str, condition: Any, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "IN", condition, strict=True)

    def where_not_in(self, field: str, condition: Any, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "NOT IN", condition, strict=True)

    def where_like(self, field: str, condition: Any, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "LIKE", condition, strict=True)

    def where_not_like(self, field: str, condition: Any, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "NOT LIKE", condition, strict=True)

    def where_between(self, field: str, condition: Any, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "BETWEEN", condition, strict=True)

    def where_not_between(self, field: str, condition: Any, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "NOT BETWEEN", condition, strict=True)

    def where_find_in_set(self, field: str, condition: Any, logic: str = "AND"):
        return self._parse_where_exp(logic, field, "FIND IN SET", condition, strict=True)

    def where_column(self, field1: str, op: str, field2: Optional[str] = None, logic: str = "AND"):
        """Compare two columns: ``where_column("a", ">", "b")``."""
        if field2 is None:
            field2 = op
            op = "="
        return self._parse_where_exp(logic, field1, "COLUMN", [op, field2], strict=True)

    def where_exp(self, field: str, where: str, bind: Optional[Sequence[Any]] = None, logic: str = "AND"):
        """``field`` followed by a raw SQL fragment: ``where_exp("id", "> 10")``."""
        self.options.setdefault("where", {}).setdefault(logic.upper(), []).append(
            [field, "EXP", Raw(where, bind or None)]
        )
        return self

    def where_field_raw(self, field: str, op: Any, condition: Any = UNSET, logic: str = "AND"):
        """Raw left-hand side: ``where_field_raw("YEAR(created)", "=", 2024)``."""
        if condition is UNSET:
            condition = op
            op = "="
        self.options.setdefault("where", {}).setdefault(logic.upper(), []).append([Raw(field), op, condition])
        return self

    def where_raw(self, where: Any, bind: Optional[Sequence[Any]] = None, logic: str = "AND"):
        if isinstance(where, Raw):
            raw = where if not bind else Raw(where.get_value(), bind)
        else:
            raw = Raw(where, bind or None)
        self.options.setdefault("where", {}).setdefault(logic.upper(), []).append(raw)
        return self

    def where_or_raw(self, where: Any, bind: Optional[Sequence[Any]] = None):
        return self.where_raw(where, bind, "OR")

    # ── Options ──────────────────────────────────────────────────────

    def use_soft_delete(self, field: str, condition: Any = None):
        """Attach the soft delete rule rendered around the whole where tree."""
        if field:
            self.options["soft_delete"] = (field, condition)
        return self

    def remove_where_field(self, field: str, logic: str = "AND"):
        logic = logic.upper()
        where = self.options.get("where") or {}
        if logic in where:
            where[logic] = [
                item for item in where[logic]
                if not (isinstance(item, (list, tuple)) and item and item[0] == field)
            ]
        return self

    def when(self, condition: Any, query: Any, otherwise: Any = None):
        """Apply ``query`` when ``condition`` holds, else ``otherwise``."""
        if callable(condition) and not isinstance(condition, type):
            condition = condition(self)

        branch = query if condition else otherwise
        if branch is None:
            return self
        if is_modifier(branch):
            call_modifier(branch, self, condition)
        elif isinstance(branch, (dict, list)):
            self.where(branch)
        return self

    # ── Normalization ────────────────────────────────────────────────

    def _parse_where_exp(
        self,
        logic: str,
        field: Any,
        op: Any = UNSET,
        condition: Any = UNSET,
        extra: Any = None,
        strict: bool = False,
    ):
        logic = logic.upper()

        via = self.options.get("via")
        if isinstance(field, str) and via and "." not in field:
            field = f"{via}.{field}"

        if isinstance(field, Raw):
            return self.where_raw(field, op if isinstance(op, (list, dict)) else None, logic)

        where: Any = None
        if strict:
            if op == "=":
                where = self._where_eq(field, condition)
            else:
                where = [field, op, condition, logic]
        elif isinstance(field, (dict, list, tuple)):
            return self.parse_array_where_items(field, logic)
        elif is_modifier(field):
            where = field
        elif isinstance(field, str):
            if _RAW_FIELD_RE.search(field):
                return self.where_raw(field, op if isinstance(op, (list, dict)) else None, logic)
            if isinstance(op, str) and op.lower() == "exp" and condition is not None and condition is not UNSET:
                bind = extra if isinstance(extra, (list, dict)) else None
                return self.where_exp(field, condition, bind, logic)
            where = self._parse_where_item(logic, field, op, condition, extra)

        if where:
            self.options.setdefault("where", {}).setdefault(logic, []).append(where)
        return self

    def _parse_where_item(self, logic: str, field: str, op: Any, condition: Any, extra: Any = None) -> Any:
        if field and (condition is None or condition is UNSET):
            if isinstance(op, str) and op.upper() in _NULL_OPS:
                return [field, op, ""]
            if op == "=" or op is None or op is UNSET:
                return [field, "NULL", ""]
            if op == "<>":
                return [field, "NOTNULL", ""]
            return self._where_eq(field, op)
        if isinstance(op, str) and op.upper() in _EXISTS_OPS:
            return [field, op, Raw(condition) if isinstance(condition, str) else condition]
        if not field:
            return []
        if op == "=":
            return self._where_eq(field, condition)
        return [field, op, condition, extra if isinstance(extra, str) else None]

    def _where_eq(self, field: str, value: Any) -> List[Any]:
        if self.get_pk() == field:
            self.options["key"] = value
        return [field, "=", value]

    def parse_array_where_items(self, field: Any, logic: str):
        """Batch mode: a dict of tests or a list of prepared entries."""
        where: List[Any] = []
        if isinstance(field, dict):
            for key, val in field.items():
                if isinstance(val, Raw):
                    where.append([key, "EXP", val])
                elif val is None:
                    where.append([key, "NULL", ""])
                elif isinstance(val, (list, tuple, set)):
                    where.append([key, "IN", list(val)])
                else:
                    where.append([key, "=", val])
        else:
            where = list(field)

        if where:
            self.options.setdefault("where", {}).setdefault(logic, []).extend(where)
        return self


def _is_query(value: Any) -> bool:
    return hasattr(value, "get_options") and hasattr(value, "build_sql")
