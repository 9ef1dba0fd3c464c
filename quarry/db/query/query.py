"""
Quarry Query — ``BaseQuery`` plus joins, views, raw clauses, write
helpers and streaming reads.

Usage:
    db.table("users u").left_join("profile p", "p.user_id = u.id").select()
    db.table("users").where("id", 1).inc("score", 5).update()
    for row in db.table("logs").cursor():
        ...
    db.table("users").chunk(100, handle_batch)
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ...faults import DbFault
from ..raw import Raw
from .base import BaseQuery
from .cursor import Cursor
from .fetch import Fetch
from .options import copy_options

__all__ = ["Query"]

_VIEW_EXPR_RE = re.compile(r"[,=.'\"(\s]")


class Query(BaseQuery):
    """The default query class handed out by ``Connection.new_query()``."""

    def procedure(self, procedure: bool = True) -> "Query":
        """Treat the statement as a stored procedure call."""
        self.options["procedure"] = procedure
        return self

    def fetch_sql(self, fetch: bool = True) -> Union["Query", Fetch]:
        """Make the next terminal call return its SQL instead of running it."""
        self.options["fetch_sql"] = fetch
        if fetch:
            return Fetch(self)
        return self

    def table_raw(self, table: str, bind: Optional[Sequence[Any]] = None) -> "Query":
        self.options["table"] = Raw(table, bind)
        return self

    def order_raw(self, field: str, bind: Optional[Sequence[Any]] = None) -> "Query":
        self.options.setdefault("order", []).append(Raw(field, bind))
        return self

    def order_field(self, field: str, values: Sequence[Any], order: str = "") -> "Query":
        """Order by the position of ``field`` within ``values``."""
        if values:
            self.options.setdefault("order", []).append((field, list(values), order))
        return self

    def order_rand(self) -> "Query":
        self.options.setdefault("order", []).append("[rand]")
        return self

    def exp(self, field: str, value: str) -> "Query":
        """Write ``field = <raw SQL>``."""
        self.options.setdefault("data", {})[field] = Raw(value)
        return self

    def batch_query(self, sql: Sequence[str]) -> bool:
        """Execute several statements in one transaction."""
        return self.connection.batch_query(self, list(sql))

    def using(self, using: Any) -> "Query":
        self.options["using"] = using
        return self

    def group(self, group: Union[str, List[str]]) -> "Query":
        self.options["group"] = group
        return self

    def having(self, having: str) -> "Query":
        self.options["having"] = having
        return self

    def distinct(self, distinct: bool = True) -> "Query":
        self.options["distinct"] = distinct
        return self

    def force(self, force: Union[str, List[str]]) -> "Query":
        """Index hint (MySQL ``FORCE INDEX``)."""
        self.options["force"] = force
        return self

    def comment(self, comment: str) -> "Query":
        self.options["comment"] = comment
        return self

    def replace(self, replace: bool = True) -> "Query":
        """Insert with ``REPLACE`` semantics."""
        self.options["replace"] = replace
        return self

    def partition(self, partition: Union[str, List[str]]) -> "Query":
        self.options["partition"] = partition
        return self

    def duplicate(self, duplicate: Any) -> "Query":
        """``ON DUPLICATE KEY UPDATE`` columns (list) or assignments (dict)."""
        self.options["duplicate"] = duplicate
        return self

    def extra(self, extra: str) -> "Query":
        """Statement modifier such as ``IGNORE`` or ``SQL_NO_CACHE``."""
        self.options["extra"] = extra
        return self

    def sequence(self, sequence: Optional[str] = None) -> "Query":
        """Sequence name used for the last insert id (PostgreSQL)."""
        self.options["sequence"] = sequence
        return self

    def get_auto_inc(self) -> Optional[str]:
        return self.connection.get_auto_inc(self.get_main_table())

    # ── Write helpers ────────────────────────────────────────────────

    def inc(self, field: str, step: float = 1) -> "Query":
        self.options.setdefault("data", {})[field] = ["INC", step]
        return self

    def dec(self, field: str, step: float = 1) -> "Query":
        self.options.setdefault("data", {})[field] = ["DEC", step]
        return self

    def set_inc(self, field: str, step: float = 1) -> int:
        """Increment immediately."""
        return self.inc(field, step).update()

    def set_dec(self, field: str, step: float = 1) -> int:
        return self.dec(field, step).update()

    # ── Streaming ────────────────────────────────────────────────────

    def cursor(self, data: Any = None) -> Cursor:
        """Single-pass lazy iteration over the result set."""
        if data is not None:
            self.parse_pk_where(data)
        return self.connection.cursor(self)

    def chunk(self, count: int, callback: Callable[[Any], Any], column: Optional[str] = None,
              order: str = "asc") -> bool:
        """
        Process the result set ``count`` rows at a time.

        Pages by keyset on ``column`` (the primary key by default); stops
        early and returns ``False`` when ``callback`` returns ``False``.
        """
        column = column or self.get_pk()
        if not isinstance(column, str):
            raise DbFault("chunk needs a single ordering column", config=self.connection.get_config())
        key = column.split(".")[-1]
        op = ">" if order.lower() == "asc" else "<"

        options = self._snapshot()
        options.pop("order", None)
        bind = self.get_bind(False)

        last_id: Any = None
        while True:
            self.set_options(copy_options(options)).bind(bind)
            if last_id is not None:
                self.where(column, op, last_id)
            result_set = self.order(column, order).limit(count).select()

            rows = list(result_set)
            if not rows:
                break
            if callback(result_set) is False:
                return False
            last_id = rows[-1][key]
            if len(rows) < count:
                break
        return True

    # ── Join / view ──────────────────────────────────────────────────

    def join(self, join: Any, condition: Any = None, type: str = "INNER",
             bind: Optional[Sequence[Any]] = None) -> "Query":
        """
        ``join("profile p", "p.user_id = users.id")``; ``join`` may also be
        a ``{table: alias}`` dict, a sub-query string or a ``Raw``.
        """
        table = self._get_join_table(join)
        if bind and isinstance(condition, str):
            condition = self.bind_params(condition, list(bind))
        self.options.setdefault("join", []).append((table, type.upper(), condition))
        return self

    def left_join(self, join: Any, condition: Any = None, bind: Optional[Sequence[Any]] = None) -> "Query":
        return self.join(join, condition, "LEFT", bind)

    def right_join(self, join: Any, condition: Any = None, bind: Optional[Sequence[Any]] = None) -> "Query":
        return self.join(join, condition, "RIGHT", bind)

    def full_join(self, join: Any, condition: Any = None, bind: Optional[Sequence[Any]] = None) -> "Query":
        return self.join(join, condition, "FULL", bind)

    def _get_join_table(self, join: Any) -> Any:
        return self._join_table_alias(join)[0]

    def _join_table_alias(self, join: Any):
        if isinstance(join, Raw):
            return join, None
        if isinstance(join, dict):
            table, alias = next(iter(join.items()))
            if alias:
                self.alias({table: alias})
            return {table: alias}, alias or table

        join = str(join).strip()
        if "(" in join:
            return join, None

        parts = join.split()
        table, alias = (parts[0], parts[-1]) if len(parts) > 1 else (join, None)
        if "." not in table and not table.startswith(self.prefix) and not table.startswith("__"):
            table = self.get_table(table)
        if alias:
            self.alias({table: alias})
            return {table: alias}, alias
        return table, table

    def view(self, join: Any, field: Any = True, on: Any = None, type: str = "INNER",
             bind: Optional[Sequence[Any]] = None) -> "Query":
        """
        Select fields of several tables as one flat view:
        ``view("users", "id,name").view("profile", "city", "profile.user_id=users.id")``.

        Bare field names used later in where / order resolve through the
        view's field map.
        """
        self.options["view"] = True
        table, alias = self._join_table_alias(join)
        view_map = self.options.setdefault("map", {})

        fields: List[Any] = []
        if field is True:
            fields.append(f"{alias}.*")
        else:
            if isinstance(field, str):
                field = [item.strip() for item in field.split(",")]
            items = field.items() if isinstance(field, dict) else [(name, None) for name in field]
            for key, name in items:
                if name is None:
                    fields.append(f"{alias}.{key}")
                    view_map[key] = f"{alias}.{key}"
                else:
                    expr = key if _VIEW_EXPR_RE.search(key) else f"{alias}.{key}"
                    fields.append((expr, name))
                    view_map[name] = expr
        self.field(fields)

        if on:
            self.join(table, on, type, bind)
        else:
            self.table(table)
        return self

    def parse_options(self) -> Dict[str, Any]:
        options = super().parse_options()
        if options.get("view") and options.get("map"):
            self._parse_view(options)
        return options

    @staticmethod
    def _parse_view(options: Dict[str, Any]) -> None:
        view_map = options["map"]
        for items in (options.get("where") or {}).values():
            for item in items:
                if isinstance(item, list) and item and isinstance(item[0], str) and item[0] in view_map:
                    item[0] = view_map[item[0]]

        orders = []
        for item in options.get("order") or []:
            if isinstance(item, tuple) and isinstance(item[0], str) and item[0] in view_map:
                item = (view_map[item[0]],) + item[1:]
            elif isinstance(item, str) and item.split()[0] in view_map:
                head, _, tail = item.partition(" ")
                item = f"{view_map[head]} {tail}".strip()
            orders.append(item)
        options["order"] = orders
