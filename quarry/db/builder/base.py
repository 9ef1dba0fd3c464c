"""
Quarry SQL Builder — dialect independent statement rendering.

A builder renders the normalized options of a ``Query`` into SQL text.
Every statement kind has a template with ``%CLAUSE%`` placeholders; each
placeholder is produced by an independent ``parse_*`` method so dialects
override single clauses without touching the rest.

Values never reach the SQL text: they are registered on the query's
bind table and referenced as ``:BindN_x_`` placeholders. ``Raw``
fragments are embedded verbatim and their own binds merged in.

Usage:
    builder = connection.get_builder()
    sql = builder.select(query.parse_options() and query)
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ...faults import DbFault
from ..binder import PARAM_STR
from ..raw import Raw

if TYPE_CHECKING:
    from ..connection import Connection
    from ..query.base import BaseQuery

__all__ = ["Builder", "is_scalar"]

logger = logging.getLogger("quarry.db.builder")

_PLACEHOLDER_RE = re.compile(r"%([A-Z]+)%")

# Characters that mark a key as an expression rather than an identifier
_EXPRESSION_RE = re.compile(r"[,'\"*()`\s]")

# Strict identifiers: letters, digits, underscore and the table separator
_STRICT_KEY_RE = re.compile(r"^[A-Za-z0-9_.]+$")

_ORDER_KEY_RE = re.compile(r"^[\w.]+$")

_JOIN_ON_RE = re.compile(r"^\s*([\w.]+)\s*=\s*([\w.]+)\s*$")

_EXTRA_RE = re.compile(r"^\w+$")

_COMPARE_OPS = ("=", "<>", ">", ">=", "<", "<=")


def is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool, Decimal, datetime, date))


def _number(value: Any) -> str:
    number = float(value)
    return str(int(number)) if number.is_integer() else repr(number)


class Builder:
    """
    Base SQL builder.

    Subclasses set the statement templates, the identifier quote and
    may extend ``parser`` with dialect operators.
    """

    # Operator aliases accepted from callers
    exp: Dict[str, str] = {
        "NOTLIKE": "NOT LIKE",
        "NOTIN": "NOT IN",
        "NOTBETWEEN": "NOT BETWEEN",
        "NOTEXISTS": "NOT EXISTS",
        "NOTNULL": "NOT NULL",
        "NOTBETWEEN TIME": "NOT BETWEEN TIME",
        "EQ": "=",
        "NEQ": "<>",
        "GT": ">",
        "EGT": ">=",
        "LT": "<",
        "ELT": "<=",
        "!=": "<>",
    }

    # Where renderer -> operators it handles
    parser: Dict[str, Tuple[str, ...]] = {
        "parse_compare": _COMPARE_OPS,
        "parse_like": ("LIKE", "NOT LIKE"),
        "parse_between": ("BETWEEN", "NOT BETWEEN"),
        "parse_in": ("IN", "NOT IN"),
        "parse_exp": ("EXP",),
        "parse_null": ("NULL", "NOT NULL"),
        "parse_between_time": ("BETWEEN TIME", "NOT BETWEEN TIME"),
        "parse_time": ("< TIME", "> TIME", "<= TIME", ">= TIME"),
        "parse_exists": ("EXISTS", "NOT EXISTS"),
        "parse_column": ("COLUMN",),
    }

    identifier_quote = "`"

    select_sql = (
        "SELECT%DISTINCT%%EXTRA% %FIELD% FROM %TABLE%%FORCE%%JOIN%%WHERE%"
        "%GROUP%%HAVING%%UNION%%ORDER%%LIMIT%%LOCK%%COMMENT%"
    )
    insert_sql = "%INSERT%%EXTRA% INTO %TABLE% (%FIELD%) VALUES (%DATA%)%COMMENT%"
    insert_all_sql = "%INSERT%%EXTRA% INTO %TABLE% (%FIELD%) VALUES %DATA%%COMMENT%"
    update_sql = "UPDATE%EXTRA% %TABLE% SET %SET%%JOIN%%WHERE%%ORDER%%LIMIT%%LOCK%%COMMENT%"
    delete_sql = "DELETE%EXTRA% FROM %TABLE%%USING%%JOIN%%WHERE%%ORDER%%LIMIT%%LOCK%%COMMENT%"

    def __init__(self, connection: "Connection"):
        self.connection = connection
        self._operators: Dict[str, str] = {}
        self._rebuild_operators()

    def get_connection(self) -> "Connection":
        return self.connection

    def bind_parser(self, name: str, operators: Sequence[str]) -> "Builder":
        """Register a where renderer method for extra operators."""
        self.parser = {**self.parser, name: tuple(op.upper() for op in operators)}
        self._rebuild_operators()
        return self

    def _rebuild_operators(self) -> None:
        self._operators = {op: name for name, ops in self.parser.items() for op in ops}

    # ── Rendering helpers ────────────────────────────────────────────

    @staticmethod
    def _render(template: str, parts: Mapping[str, str]) -> str:
        return _PLACEHOLDER_RE.sub(lambda m: parts.get(m.group(1), ""), template).strip()

    def quote(self, name: str) -> str:
        q = self.identifier_quote
        return f"{q}{name}{q}"

    def parse_raw(self, query: "BaseQuery", raw: Raw) -> str:
        sql = raw.get_value()
        bind = raw.get_bind()
        if bind:
            sql = query.bind_params(sql, bind)
        return sql

    # ── Identifiers ──────────────────────────────────────────────────

    def parse_key(self, query: "BaseQuery", key: Any, strict: bool = False) -> str:
        """
        Quote an identifier.

        ``table.column`` is split and both parts quoted, ``__TABLE__``
        resolves to the query's primary table and declared aliases are
        substituted. JSON paths (``col->path`` / ``col->>path``) render
        through ``parse_json_path``. Expressions (anything containing
        ``, ' " * ( ) `` or whitespace) pass through untouched.

        With ``strict`` the bare identifier must only contain
        ``[A-Za-z0-9_.]``.
        """
        if isinstance(key, bool):
            key = int(key)
        if isinstance(key, int):
            return str(key)
        if isinstance(key, Raw):
            return self.parse_raw(query, key)

        key = str(key).strip()
        if "(" not in key:
            for op, unquote in (("->>", True), ("->", False)):
                pos = key.find(op)
                if pos > 0:
                    field, path = key.split(op, 1)
                    return self.parse_json_path(
                        self.parse_key(query, field, True),
                        path.replace(op, ".").replace("'", ""),
                        unquote,
                    )

        table: Optional[str] = None
        if key.find(".") > 0 and not _EXPRESSION_RE.search(key):
            table, key = key.split(".", 1)
            if table == "__TABLE__":
                table = query.get_main_table()
            alias = query.get_options("alias") or {}
            if table in alias:
                table = alias[table]

        if strict and key != "*" and not _STRICT_KEY_RE.match(key):
            raise DbFault(f"not support data:{key}", config=self.connection.get_config())

        if key != "*" and not _EXPRESSION_RE.search(key):
            key = self.quote(key)
        if table:
            key = f"{self.quote(table)}.{key}"
        return key

    def parse_json_path(self, field: str, path: str, unquote: bool) -> str:
        prefix = "$" if path.startswith("[") else "$."
        return f"json_extract({field}, '{prefix}{path}')"

    # ── Clauses ──────────────────────────────────────────────────────

    def parse_table(self, query: "BaseQuery", tables: Any) -> str:
        if isinstance(tables, Raw):
            return self.parse_raw(query, tables)
        options_alias = query.get_options("alias") or {}
        if isinstance(tables, str):
            tables = {tables: None}
        items: List[str] = []
        for name, alias in tables.items():
            if isinstance(name, Raw):
                items.append(self.parse_raw(query, name))
                continue
            alias = alias or options_alias.get(name)
            if alias:
                items.append(f"{self.parse_key(query, name)} AS {self.parse_key(query, alias)}")
            else:
                items.append(self.parse_key(query, name))
        return ",".join(items)

    def parse_distinct(self, query: "BaseQuery", distinct: bool) -> str:
        return " DISTINCT" if distinct else ""

    def parse_extra(self, query: "BaseQuery", extra: str) -> str:
        return f" {extra}" if extra and _EXTRA_RE.match(extra) else ""

    def parse_field(self, query: "BaseQuery", fields: Any) -> str:
        if isinstance(fields, Raw):
            return self.parse_raw(query, fields)
        if not fields:
            return "*"
        items: List[str] = []
        for field in fields:
            if isinstance(field, Raw):
                items.append(self.parse_raw(query, field))
            elif isinstance(field, tuple):
                expr, alias = field
                items.append(f"{self.parse_key(query, expr)} AS {self.parse_key(query, alias, True)}")
            else:
                items.append(self.parse_key(query, field))
        return ",".join(items)

    def parse_force(self, query: "BaseQuery", index: Any) -> str:
        return ""

    def parse_partition(self, query: "BaseQuery", partition: Any) -> str:
        return ""

    def parse_duplicate(self, query: "BaseQuery", duplicate: Any) -> str:
        return ""

    def parse_join(self, query: "BaseQuery", join: Sequence[Tuple[Any, str, Any]]) -> str:
        parts: List[str] = []
        for table, type_, on in join:
            if isinstance(on, Raw):
                condition = self.parse_raw(query, on)
            elif isinstance(on, (list, tuple)):
                condition = " AND ".join(self._parse_join_on(query, item) for item in on)
            else:
                condition = self._parse_join_on(query, on)
            parts.append(f" {type_} JOIN {self.parse_table(query, table)} ON {condition}")
        return "".join(parts)

    def _parse_join_on(self, query: "BaseQuery", on: Any) -> str:
        if isinstance(on, Raw):
            return self.parse_raw(query, on)
        match = _JOIN_ON_RE.match(str(on))
        if match:
            return f"{self.parse_key(query, match.group(1))}={self.parse_key(query, match.group(2))}"
        return str(on)

    # ── WHERE ────────────────────────────────────────────────────────

    def parse_where(self, query: "BaseQuery", where: Mapping[str, list]) -> str:
        options = query.get_options()
        where_str = self.build_where(query, where)
        soft_delete = options.get("soft_delete")
        if soft_delete:
            field, condition = soft_delete
            binds = query.get_fields_bind_type()
            soft = self.parse_where_item(query, field, condition, binds)
            where_str = f"( {where_str} ) AND {soft}" if where_str else soft
        return f" WHERE {where_str}" if where_str else ""

    def build_where(self, query: "BaseQuery", where: Optional[Mapping[str, list]]) -> str:
        """Render the condition tree; groups are joined by their logic keyword."""
        if not where:
            return ""
        binds = query.get_fields_bind_type()
        pieces: List[Tuple[str, str]] = []
        for logic, items in where.items():
            for piece in self.parse_where_logic(query, logic, items, binds):
                pieces.append((logic, piece))
        if not pieces:
            return ""
        result = pieces[0][1]
        for logic, piece in pieces[1:]:
            result += f" {logic} {piece}"
        return result

    def parse_where_logic(self, query: "BaseQuery", logic: str, items: Sequence[Any], binds: Mapping[str, str]) -> List[str]:
        where: List[str] = []
        for item in items:
            if isinstance(item, Raw):
                where.append(f"( {self.parse_raw(query, item)} )")
                continue
            if item is True:
                where.append("1")
                continue
            if self._is_subquery(item):
                closure = self.parse_closure_where(query, item)
                if closure:
                    where.append(closure)
                continue
            if not isinstance(item, (list, tuple)) or not item:
                raise DbFault(f"where express error:{item!r}", config=self.connection.get_config())

            field, condition = item[0], list(item[1:])
            if isinstance(field, (list, tuple)):
                where.append(self.parse_multi_where(query, [field] + condition, binds))
            elif isinstance(field, str) and field.find("|") > 0:
                where.append(self.parse_fields_join(query, condition, field.split("|"), "OR", binds))
            elif isinstance(field, str) and field.find("&") > 0:
                where.append(self.parse_fields_join(query, condition, field.split("&"), "AND", binds))
            else:
                where.append(self.parse_where_item(query, field, condition, binds))
        return where

    @staticmethod
    def _is_subquery(item: Any) -> bool:
        return callable(item) or hasattr(item, "apply")

    def parse_closure_where(self, query: "BaseQuery", value: Any) -> str:
        new_query = query.new_query()
        query.call_modifier(value, new_query)
        where_str = self.build_where(new_query, new_query.get_options("where") or {})
        if not where_str:
            return ""
        query.bind(new_query.get_bind(False))
        return f"( {where_str} )"

    def parse_multi_where(self, query: "BaseQuery", items: Sequence[Sequence[Any]], binds: Mapping[str, str]) -> str:
        where = [self.parse_where_item(query, item[0], list(item[1:]), binds) for item in items]
        return "( " + " AND ".join(where) + " )"

    def parse_fields_join(self, query: "BaseQuery", condition: List[Any], fields: Sequence[str], logic: str, binds: Mapping[str, str]) -> str:
        where = [self.parse_where_item(query, field.strip(), list(condition), binds) for field in fields]
        return "( " + f" {logic} ".join(where) + " )"

    def _bind_type(self, query: "BaseQuery", field: Any, binds: Mapping[str, str]) -> str:
        if not isinstance(field, str) or not field:
            return PARAM_STR
        if field in binds:
            return binds[field]
        if "." in field:
            table, column = field.split(".", 1)
            main = query.get_main_table()
            alias = (query.get_options("alias") or {}).get(main)
            if table in ("__TABLE__", main, alias):
                return binds.get(column, PARAM_STR)
        return PARAM_STR

    def parse_where_item(self, query: "BaseQuery", field: Any, condition: Sequence[Any], binds: Mapping[str, str]) -> str:
        key = self.parse_key(query, field, True) if field else ""
        exp = condition[0] if condition else None
        value = condition[1] if len(condition) > 1 else None
        logic = condition[2] if len(condition) > 2 and condition[2] else "AND"

        if not isinstance(exp, str):
            raise DbFault(f"where express error:{exp!r}", config=self.connection.get_config())
        exp = exp.strip().upper()
        exp = self.exp.get(exp, exp)

        bind_type = self._bind_type(query, field, binds)
        if (
            is_scalar(value)
            and exp not in ("EXP", "NOT NULL", "NULL", "IN", "NOT IN", "BETWEEN", "NOT BETWEEN")
            and "TIME" not in exp
        ):
            value = ":" + query.bind_value(value, bind_type)

        method = self._operators.get(exp)
        if method is None:
            raise DbFault(f"where express error:{exp}", config=self.connection.get_config())
        return getattr(self, method)(query, key, exp, value, field, bind_type, str(logic).upper())

    def parse_compare(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, (list, dict, set)):
            raise DbFault(f"where express error:{value!r}", config=self.connection.get_config())
        if isinstance(value, Raw):
            value = self.parse_raw(query, value)
        elif self._is_subquery(value) or _is_query(value):
            value = self.parse_closure(query, value)
        if value is None:
            if exp == "=":
                return f"{key} IS NULL"
            if exp == "<>":
                return f"{key} IS NOT NULL"
            value = "NULL"
        return f"{key} {exp} {value}"

    def parse_like(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, (list, tuple)):
            items = [f"{key} {exp} :{query.bind_value(item, bind_type)}" for item in value]
            return "(" + f" {logic} ".join(items) + ")"
        if isinstance(value, Raw):
            value = self.parse_raw(query, value)
        return f"{key} {exp} {value}"

    def parse_between(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, Raw):
            return f"{key} {exp} {self.parse_raw(query, value)}"
        data = list(value) if isinstance(value, (list, tuple)) else str(value).split(",")
        if len(data) < 2:
            raise DbFault(f"where express error:{value!r}", config=self.connection.get_config())
        low = query.bind_value(data[0], bind_type)
        high = query.bind_value(data[1], bind_type)
        return f"{key} {exp} :{low} AND :{high}"

    def parse_in(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, Raw):
            value = self.parse_raw(query, value)
        elif self._is_subquery(value) or _is_query(value):
            value = self.parse_closure(query, value, False)
        else:
            if isinstance(value, str):
                value = value.split(",")
            elif not isinstance(value, (list, tuple, set)):
                value = [value]
            values = list(dict.fromkeys(value))
            if not values:
                return "0=1" if exp == "IN" else "1=1"
            names = [":" + query.bind_value(item, bind_type) for item in values]
            if len(names) == 1:
                return f"{key} {'=' if exp == 'IN' else '<>'} {names[0]}"
            value = ",".join(names)
        return f"{key} {exp} ({value})"

    def parse_exp(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        raw = value if isinstance(value, Raw) else Raw(str(value))
        return f"( {key} {self.parse_raw(query, raw)} )"

    def parse_null(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        return f"{key} IS {exp}"

    def parse_between_time(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, str):
            value = value.split(",")
        low = self.parse_date_time(query, value[0], field, bind_type)
        high = self.parse_date_time(query, value[1], field, bind_type)
        return f"{key} {exp[:-5]} {low} AND {high}"

    def parse_time(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        return f"{key} {exp[:-5]} {self.parse_date_time(query, value, field, bind_type)}"

    def parse_date_time(self, query: "BaseQuery", value: Any, field: Any, bind_type: str) -> str:
        """Normalize a time bound to the column's storage format and bind it."""
        from ..query.timerange import to_timestamp

        if isinstance(value, Raw):
            return self.parse_raw(query, value)
        type_ = query.get_field_type(field) if isinstance(field, str) else None
        if type_:
            type_ = str(type_).lower()
            timestamp = to_timestamp(value)
            if timestamp is not None:
                if "datetime" in type_ or "timestamp" in type_:
                    value = datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")
                elif "date" in type_:
                    value = datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d")
                elif type_ in ("int", "integer", "float"):
                    value = int(timestamp)
        elif isinstance(value, datetime):
            value = value.strftime("%Y-%m-%d %H:%M:%S")
        elif isinstance(value, date):
            value = value.strftime("%Y-%m-%d")
        return ":" + query.bind_value(value, bind_type)

    def parse_exists(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, Raw):
            value = self.parse_raw(query, value)
        elif self._is_subquery(value) or _is_query(value):
            value = self.parse_closure(query, value, False)
        else:
            raise DbFault(f"where express error:{value!r}", config=self.connection.get_config())
        return f"{exp} ( {value} )"

    def parse_column(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        op, other = value
        if str(op).strip() not in _COMPARE_OPS:
            raise DbFault(f"where express error:{value!r}", config=self.connection.get_config())
        return f"( {key} {str(op).strip()} {self.parse_key(query, other, True)} )"

    def parse_closure(self, query: "BaseQuery", callback: Any, show: bool = True) -> str:
        """Render a sub-query given as a Query or as a callback building one."""
        if _is_query(callback):
            return callback.build_sql(show, bind_to=query)
        new_query = query.new_query().remove_option()
        query.call_modifier(callback, new_query)
        return new_query.build_sql(show, bind_to=query)

    # ── GROUP / HAVING / UNION / ORDER / LIMIT ───────────────────────

    def parse_group(self, query: "BaseQuery", group: Any) -> str:
        if not group:
            return ""
        if isinstance(group, str):
            group = [g.strip() for g in group.split(",")]
        return " GROUP BY " + ",".join(self.parse_key(query, key) for key in group)

    def parse_having(self, query: "BaseQuery", having: Any) -> str:
        if isinstance(having, Raw):
            having = self.parse_raw(query, having)
        return f" HAVING {having}" if having else ""

    def parse_union(self, query: "BaseQuery", union: Mapping[str, Any]) -> str:
        if not union or not union.get("items"):
            return ""
        type_ = union.get("type", "UNION")
        sql: List[str] = []
        for item in union["items"]:
            if isinstance(item, str):
                sql.append(f"{type_} ( {item} )")
            else:
                sql.append(f"{type_} {self.parse_closure(query, item)}")
        return " " + " ".join(sql)

    def parse_order(self, query: "BaseQuery", order: Sequence[Any]) -> str:
        items: List[str] = []
        for entry in order:
            if isinstance(entry, Raw):
                items.append(self.parse_raw(query, entry))
            elif entry == "[rand]":
                items.append(self.parse_rand(query))
            elif isinstance(entry, tuple) and len(entry) == 3:
                field, values, sort = entry
                items.append(self.parse_order_field(query, field, values, sort))
            else:
                if isinstance(entry, tuple):
                    key, sort = entry
                else:
                    key, _, sort = str(entry).strip().partition(" ")
                key = str(key).strip()
                sort = (sort or "").strip()
                if not _ORDER_KEY_RE.match(key):
                    raise DbFault(f"order express error:{key}", config=self.connection.get_config())
                sort = f" {sort}" if sort.upper() in ("ASC", "DESC") else ""
                items.append(self.parse_key(query, key, True) + sort)
        return " ORDER BY " + ",".join(items) if items else ""

    def parse_order_field(self, query: "BaseQuery", key: str, values: Sequence[Any], sort: str) -> str:
        bind = query.get_fields_bind_type()
        sort = f" {sort.upper()}" if sort and sort.upper() in ("ASC", "DESC") else ""
        column = self.parse_key(query, key, True)
        cases = " ".join(
            f"WHEN {self.parse_data_bind(query, key, value, bind)} THEN {i}"
            for i, value in enumerate(values)
        )
        return f"CASE {column} {cases} ELSE {len(values)} END{sort}"

    def parse_rand(self, query: "BaseQuery") -> str:
        return "RANDOM()"

    def parse_limit(self, query: "BaseQuery", limit: Any) -> str:
        return f" LIMIT {limit}" if limit not in ("", None) else ""

    def parse_lock(self, query: "BaseQuery", lock: Any) -> str:
        if isinstance(lock, bool):
            return " FOR UPDATE" if lock else ""
        if isinstance(lock, str) and lock.strip():
            return f" {lock.strip()}"
        return ""

    def parse_comment(self, query: "BaseQuery", comment: str) -> str:
        if not comment:
            return ""
        comment = str(comment).split("*/", 1)[0].strip()
        return f" /* {comment} */" if comment else ""

    # ── Data ─────────────────────────────────────────────────────────

    def parse_data(
        self,
        query: "BaseQuery",
        data: Optional[Mapping[str, Any]],
        fields: Optional[Sequence[str]] = None,
        bind: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """Render a write data map into ``{quoted column: sql value}``."""
        if not data:
            return {}
        options = query.get_options()
        if not bind:
            bind = query.get_fields_bind_type()
        if not fields:
            field_option = options.get("field") or []
            if not field_option or field_option == ["*"] or isinstance(field_option, Raw):
                fields = list(bind)
            else:
                fields = [f for f in field_option if isinstance(f, str)]
        json_fields = options.get("json") or []

        result: Dict[str, str] = {}
        for key, val in data.items():
            item = self.parse_key(query, key, True) if "->" not in key else ""
            if isinstance(val, Raw):
                result[item or self.parse_key(query, key)] = self.parse_raw(query, val)
                continue
            if not is_scalar(val) and val is not None and key in json_fields:
                val = json.dumps(val, ensure_ascii=False)

            if "->" in key:
                column, path = key.split("->", 1)
                item = self.parse_key(query, column, True)
                result[item] = self.parse_json_set(item, path, self.parse_data_bind(query, key, val, bind))
            elif "." not in key and fields and key not in fields:
                if options.get("strict"):
                    raise DbFault(f"fields not exists:[{key}]", config=self.connection.get_config())
            elif val is None:
                result[item] = "NULL"
            elif isinstance(val, (list, tuple)) and val and isinstance(val[0], str) and val[0].upper() in ("INC", "DEC"):
                sign = "+" if val[0].upper() == "INC" else "-"
                result[item] = f"{item} {sign} {_number(val[1])}"
            elif is_scalar(val):
                result[item] = self.parse_data_bind(query, key, val, bind)
        return result

    def parse_json_set(self, column: str, path: str, value: str) -> str:
        return f"json_set({column}, '$.{path}', {value})"

    def parse_data_bind(self, query: "BaseQuery", key: str, data: Any, bind: Optional[Mapping[str, str]] = None) -> str:
        if isinstance(data, Raw):
            return self.parse_raw(query, data)
        bind = bind or {}
        return ":" + query.bind_value(data, bind.get(key, PARAM_STR))

    # ── Statements ───────────────────────────────────────────────────

    def select(self, query: "BaseQuery", one: bool = False) -> str:
        options = query.get_options()
        return self._render(self.select_sql, {
            "TABLE": self.parse_table(query, options["table"]),
            "DISTINCT": self.parse_distinct(query, options["distinct"]),
            "EXTRA": self.parse_extra(query, options["extra"]),
            "FIELD": self.parse_field(query, options.get("field") or []),
            "PARTITION": self.parse_partition(query, options["partition"]),
            "FORCE": self.parse_force(query, options["force"]),
            "JOIN": self.parse_join(query, options["join"]),
            "WHERE": self.parse_where(query, options["where"]),
            "GROUP": self.parse_group(query, options["group"]),
            "HAVING": self.parse_having(query, options["having"]),
            "UNION": self.parse_union(query, options["union"]),
            "ORDER": self.parse_order(query, options["order"]),
            "LIMIT": self.parse_limit(query, "1" if one else options["limit"]),
            "LOCK": self.parse_lock(query, options["lock"]),
            "COMMENT": self.parse_comment(query, options["comment"]),
        })

    def insert(self, query: "BaseQuery") -> str:
        options = query.get_options()
        data = self.parse_data(query, options["data"])
        if not data:
            return ""
        return self._render(self.insert_sql, {
            "INSERT": "REPLACE" if options.get("replace") else "INSERT",
            "EXTRA": self.parse_extra(query, options["extra"]),
            "TABLE": self.parse_table(query, options["table"]),
            "PARTITION": self.parse_partition(query, options["partition"]),
            "FIELD": ",".join(data.keys()),
            "DATA": ",".join(data.values()),
            "SET": " , ".join(f"{k} = {v}" for k, v in data.items()),
            "DUPLICATE": self.parse_duplicate(query, options["duplicate"]),
            "COMMENT": self.parse_comment(query, options["comment"]),
        })

    def insert_all(self, query: "BaseQuery", dataset: Sequence[Mapping[str, Any]], replace: bool = False) -> str:
        options = query.get_options()
        bind = query.get_fields_bind_type()
        field_option = options.get("field") or []
        if not field_option or field_option == ["*"] or isinstance(field_option, Raw):
            allow_fields = list(bind)
        else:
            allow_fields = [f for f in field_option if isinstance(f, str)]

        insert_fields: Optional[List[str]] = None
        values: List[str] = []
        for data in dataset:
            parsed = self.parse_data(query, data, allow_fields, bind)
            if insert_fields is None:
                insert_fields = list(parsed.keys())
            if insert_fields:
                values.append("(" + ",".join(parsed.get(k, "NULL") for k in insert_fields) + ")")
        if not insert_fields or not values:
            return ""
        return self._render(self.insert_all_sql, {
            "INSERT": "REPLACE" if replace else "INSERT",
            "EXTRA": self.parse_extra(query, options["extra"]),
            "TABLE": self.parse_table(query, options["table"]),
            "PARTITION": self.parse_partition(query, options["partition"]),
            "FIELD": " , ".join(insert_fields),
            "DATA": " , ".join(values),
            "DUPLICATE": self.parse_duplicate(query, options["duplicate"]),
            "COMMENT": self.parse_comment(query, options["comment"]),
        })

    def select_insert(self, query: "BaseQuery", fields: Sequence[str], table: str) -> str:
        columns = ",".join(self.parse_key(query, field, True) for field in fields)
        return f"INSERT INTO {self.parse_table(query, table)} ({columns}) {self.select(query)}"

    def update(self, query: "BaseQuery") -> str:
        options = query.get_options()
        data = self.parse_data(query, options["data"])
        if not data:
            return ""
        return self._render(self.update_sql, {
            "TABLE": self.parse_table(query, options["table"]),
            "EXTRA": self.parse_extra(query, options["extra"]),
            "PARTITION": self.parse_partition(query, options["partition"]),
            "SET": " , ".join(f"{k} = {v}" for k, v in data.items()),
            "JOIN": self.parse_join(query, options["join"]),
            "WHERE": self.parse_where(query, options["where"]),
            "ORDER": self.parse_order(query, options["order"]),
            "LIMIT": self.parse_limit(query, options["limit"]),
            "LOCK": self.parse_lock(query, options["lock"]),
            "COMMENT": self.parse_comment(query, options["comment"]),
        })

    def delete(self, query: "BaseQuery") -> str:
        options = query.get_options()
        using = options.get("using")
        return self._render(self.delete_sql, {
            "TABLE": self.parse_table(query, options["table"]),
            "EXTRA": self.parse_extra(query, options["extra"]),
            "PARTITION": self.parse_partition(query, options["partition"]),
            "USING": f" USING {self.parse_table(query, using)}" if using else "",
            "JOIN": self.parse_join(query, options["join"]),
            "WHERE": self.parse_where(query, options["where"]),
            "ORDER": self.parse_order(query, options["order"]),
            "LIMIT": self.parse_limit(query, options["limit"]),
            "LOCK": self.parse_lock(query, options["lock"]),
            "COMMENT": self.parse_comment(query, options["comment"]),
        })


def _is_query(value: Any) -> bool:
    return hasattr(value, "build_sql") and hasattr(value, "get_options")
