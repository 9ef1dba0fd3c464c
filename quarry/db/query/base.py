"""
Quarry Base Query — the chainable query object.

A query accumulates its intent in ``self.options`` through fluent calls
and hands itself to its ``Connection`` on a terminal call (``select``,
``find``, ``insert``, ``update``, ``delete``, aggregates). Rendering
happens in the connection's dialect ``Builder``; every value travels
through the query's ``ParamsBinder``.

Usage:
    query = db.table("users")
    rows = query.where("status", 1).order("id", "desc").limit(10).select()
    user = db.name("user").where("id", 1).find()
    db.table("users").insert({"name": "a"}, get_last_ins_id=True)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Union

from ...faults import DbFault
from ..binder import ParamsBinder, bind_type_of
from ..raw import Raw
from ...utils import snake
from .aggregate import AggregateQuery
from .options import call_modifier, copy_options, normalize_options
from .paginator import Paginator
from .relation import ModelRelationQuery
from .result import ResultOperation
from .timerange import TimeFieldQuery
from .where import WhereQuery

if TYPE_CHECKING:
    from ..connection import Connection

logger = logging.getLogger("quarry.db.query")

__all__ = ["BaseQuery"]


class BaseQuery(WhereQuery, TimeFieldQuery, AggregateQuery, ResultOperation, ModelRelationQuery):
    """
    One concrete query type assembled from capability mixins.

    Each mixin contributes one concern (conditions, time windows,
    aggregates, result post-processing, model hydration) and operates
    on the shared ``options`` dict and bind table.
    """

    def __init__(self, connection: "Connection"):
        self.connection = connection
        self.prefix: str = connection.get_config("prefix") or ""
        self.model: Any = None
        self.options: Dict[str, Any] = {}
        self._name: str = ""
        self._pk: Any = None
        self._binder = ParamsBinder()

    def new_query(self) -> "BaseQuery":
        """A fresh query on the same connection, table and model."""
        query = type(self)(self.connection)
        if self.model is not None:
            query.set_model(self.model)

        if self.options.get("table"):
            query.table(self.options["table"])
        else:
            query.name(self._name)

        if self.options.get("alias"):
            query.alias(dict(self.options["alias"]))
        if self.options.get("json"):
            query.json(self.options["json"], bool(self.options.get("json_assoc")))
        if self.options.get("field_type"):
            query.set_field_type(self.options["field_type"])
        return query

    def get_connection(self) -> "Connection":
        return self.connection

    # ── Table ────────────────────────────────────────────────────────

    def table(self, table: Any) -> "BaseQuery":
        """
        Set the table(s) by full name.

        Accepts ``"users"``, ``"users u"``, ``"users u, posts p"``,
        a list of names, a ``{name: alias}`` dict or a ``Raw``.
        """
        if isinstance(table, str):
            if ")" in table:
                pass
            elif "," in table:
                tables: Dict[str, Optional[str]] = {}
                for item in table.split(","):
                    name, alias = self._split_alias(item)
                    tables[name] = alias
                table = tables
            else:
                name, alias = self._split_alias(table)
                table = {name: alias} if alias else name
        elif isinstance(table, (list, tuple)):
            table = {name: None for name in table}

        if isinstance(table, dict):
            for name, alias in table.items():
                if alias and isinstance(name, str):
                    self.alias({name: alias})
            table = dict(table)

        self.options["table"] = table
        return self

    def _split_alias(self, item: str):
        parts = item.strip().split()
        if len(parts) > 1:
            self.alias({parts[0]: parts[-1]})
            return parts[0], parts[-1]
        return parts[0], None

    def name(self, name: str) -> "BaseQuery":
        """Set the table by name without prefix: ``name("user")``."""
        self._name = name
        return self

    def alias(self, alias: Union[str, Dict[str, str]]) -> "BaseQuery":
        aliases = self.options.setdefault("alias", {})
        if isinstance(alias, dict):
            aliases.update(alias)
        else:
            aliases[self.get_main_table() or self.get_table()] = alias
        return self

    def get_name(self) -> str:
        return self._name

    def get_table(self, name: str = "") -> Any:
        """The table option as set, or ``prefix + snake(name)``."""
        if not name and self.options.get("table"):
            return self.options["table"]
        name = name or self._name
        return self.prefix + snake(name) if name else ""

    def get_main_table(self) -> str:
        """Name of the primary table (first entry of a multi-table option)."""
        table = self.options.get("table") or self.get_table()
        if isinstance(table, dict):
            for name in table:
                if isinstance(name, str):
                    return name
            return ""
        if isinstance(table, Raw):
            return ""
        return table or ""

    # ── Fields ───────────────────────────────────────────────────────

    def field(self, field: Any) -> "BaseQuery":
        """
        Select fields.

        ``field("id, name")``, ``field(["id", "name"])``,
        ``field({"nickname": "name"})`` (expr -> alias), ``field(Raw(...))``
        or ``field(True)`` for every column of the table.
        """
        if field is None or field == "" or field == [] or field == {}:
            return self

        if isinstance(field, Raw):
            fields: List[Any] = [field]
        elif field is True:
            fields = self.get_table_fields() or ["*"]
        elif isinstance(field, str):
            if any(char in field for char in "(<'\""):
                return self.field_raw(field)
            fields = [item.strip() for item in field.split(",") if item.strip()]
        elif isinstance(field, dict):
            fields = [(key, alias) if alias else key for key, alias in field.items()]
        else:
            fields = list(field)

        merged = list(self.options.get("field") or [])
        for item in fields:
            if item not in merged:
                merged.append(item)
        self.options["field"] = merged
        return self

    def field_raw(self, field: str, bind: Optional[Sequence[Any]] = None) -> "BaseQuery":
        self.options.setdefault("field", []).append(Raw(field, bind))
        return self

    def without_field(self, field: Union[str, Sequence[str]]) -> "BaseQuery":
        """Select every table column except ``field``."""
        if not field:
            return self
        if isinstance(field, str):
            field = [item.strip() for item in field.split(",")]
        excluded = set(field)
        fields = [name for name in self.get_table_fields() if name not in excluded]
        return self.field(fields)

    def table_field(self, field: Any, table_name: str, prefix: str = "", alias: str = "") -> "BaseQuery":
        """
        Qualified fields of another table, optionally output-prefixed:
        ``table_field(True, "profile", "p", "profile__")``.
        """
        if not field:
            return self
        if isinstance(field, str):
            field = [item.strip() for item in field.split(",")]
        elif field is True:
            field = self.get_table_fields(table_name) or ["*"]

        prefix = prefix or table_name
        fields: List[Any] = []
        if isinstance(field, dict):
            for key, val in field.items():
                fields.append((f"{prefix}.{key}", val) if val else f"{prefix}.{key}")
        else:
            for key in field:
                if isinstance(key, (Raw, tuple)):
                    fields.append(key)
                elif alias and key != "*":
                    fields.append((f"{prefix}.{key}", f"{alias}{key}"))
                else:
                    fields.append(f"{prefix}.{key}")
        return self.field(fields)

    # ── Options ──────────────────────────────────────────────────────

    def set_options(self, options: Dict[str, Any]) -> "BaseQuery":
        self.options = options
        return self

    def set_option(self, option: str, value: Any) -> "BaseQuery":
        self.options[option] = value
        return self

    def get_options(self, name: Optional[str] = None) -> Any:
        if name is None:
            return self.options
        return self.options.get(name)

    def get_config(self, name: str = "") -> Any:
        return self.connection.get_config(name)

    def remove_option(self, option: str = "") -> "BaseQuery":
        """Drop one option, or everything (options and binds) when empty."""
        if not option:
            self.options = {}
            self._binder.get_bind()
        else:
            self.options.pop(option, None)
        return self

    def via(self, via: str = "") -> "BaseQuery":
        """Qualify following unqualified where fields with ``via.``."""
        self.options["via"] = via
        return self

    def pk(self, pk: Union[str, List[str]]) -> "BaseQuery":
        self._pk = pk
        return self

    def cache(self, key: Any = True, expire: Any = None, tag: Optional[str] = None) -> "BaseQuery":
        """
        Cache the result of the next read.

        ``cache(60)`` derives the key, ``cache("users:all", 300, "users")``
        sets key, lifetime and tag. Ignored when no cache store is set.
        """
        if key is False or self.connection.get_cache() is None:
            return self
        if isinstance(key, (datetime, timedelta)) or (
            isinstance(key, int) and not isinstance(key, bool) and expire is None
        ):
            expire, key = key, True
        self.options["cache"] = (key, expire, tag)
        return self

    def master(self, read_master: bool = True) -> "BaseQuery":
        """Read from the write host."""
        self.options["master"] = read_master
        return self

    def data(self, data: Dict[str, Any]) -> "BaseQuery":
        self.options["data"] = data
        return self

    def strict(self, strict: bool = True) -> "BaseQuery":
        """Reject write fields that are not table columns."""
        self.options["strict"] = strict
        return self

    def lock(self, lock: Union[bool, str] = False) -> "BaseQuery":
        """``lock(True)`` -> ``FOR UPDATE``; a string is used verbatim."""
        self.options["lock"] = lock
        if lock:
            self.options["master"] = True
        return self

    def limit(self, offset: int, length: Optional[int] = None) -> "BaseQuery":
        self.options["limit"] = f"{offset},{length}" if length else str(offset)
        return self

    def page(self, page: int, list_rows: Optional[int] = None) -> "BaseQuery":
        self.options["page"] = (page, list_rows)
        return self

    def order(self, field: Any, order: str = "") -> "BaseQuery":
        """
        ``order("id", "desc")``, ``order("id desc, name")``,
        ``order({"id": "desc"})`` or ``order(Raw(...))``.
        """
        if not field:
            return self
        orders = self.options.setdefault("order", [])
        if isinstance(field, Raw):
            orders.append(field)
        elif isinstance(field, str):
            if "," in field:
                orders.extend(item.strip() for item in field.split(",") if item.strip())
            else:
                orders.append((field, order) if order else field)
        elif isinstance(field, dict):
            orders.extend((key, sort) for key, sort in field.items())
        else:
            orders.extend(field)
        return self

    def _order_sort(self, key: str) -> Optional[str]:
        for item in self.options.get("order") or []:
            if isinstance(item, tuple) and item[0] == key:
                return item[1]
            if isinstance(item, str) and item.split()[0] == key:
                parts = item.split()
                return parts[1] if len(parts) > 1 else "asc"
        return None

    def json(self, json: Optional[List[str]] = None, assoc: bool = False) -> "BaseQuery":
        """Decode JSON columns of the result."""
        self.options["json"] = list(json or [])
        self.options["json_assoc"] = assoc
        return self

    def set_field_type(self, type: Dict[str, str]) -> "BaseQuery":
        self.options["field_type"] = dict(type)
        return self

    # ── Pagination ───────────────────────────────────────────────────

    def _snapshot(self) -> Dict[str, Any]:
        return copy_options(self.options)

    def _empty_result_set(self) -> Any:
        return self.model.to_collection([]) if self.model is not None else []

    def paginate(self, list_rows: Any = None, page: int = 1, simple: bool = False,
                 total: Optional[int] = None) -> Paginator:
        """
        One page of results.

        ``list_rows`` may be a dict ``{"list_rows": 20, "page": 3}``.
        Unless ``simple`` the total row count is queried first.
        """
        if isinstance(list_rows, dict):
            config = list_rows
            list_rows = config.get("list_rows")
            page = config.get("page", page)
            simple = config.get("simple", simple)
        list_rows = int(list_rows or 15)
        page = max(1, int(page or 1))

        if simple:
            results = self.limit((page - 1) * list_rows, list_rows + 1).select()
        elif total is None:
            options = self._snapshot()
            bind = self.get_bind(False)
            total = self.count()
            if total > 0:
                results = self.set_options(options).bind(bind).page(page, list_rows).select()
            else:
                results = self._empty_result_set()
        else:
            results = self.page(page, list_rows).select()

        self.remove_option("limit")
        self.remove_option("page")
        return Paginator.make(results, list_rows, page, total, simple)

    def paginate_x(self, list_rows: int = 15, page: int = 1, key: Optional[str] = None,
                   sort: Optional[str] = None) -> Paginator:
        """Keyset pagination over an ordered numeric ``key``."""
        key = key or self.get_pk()
        options = self._snapshot()
        if sort is None:
            sort = self._order_sort(key)
            if sort is None:
                sort = "desc"
                self.order(key, sort)
        else:
            self.order(key, sort)

        new_options = self._snapshot()
        new_options.pop("field", None)
        new_options.pop("page", None)
        first = self.new_query().set_options(new_options).field(key).order(key, sort).limit(1).find()
        result = first[key] if first else 0

        page = max(1, int(page))
        if sort.lower() == "asc":
            last_id = (result - 1) + (page - 1) * list_rows
        else:
            last_id = (result + 1) - (page - 1) * list_rows

        op = ">" if sort.lower() == "asc" else "<"
        results = self.when(
            last_id, lambda query, *args: query.where(key, op, last_id)
        ).limit(list_rows).select()
        self.set_options(options)
        return Paginator.make(results, list_rows, page, None, True)

    def more(self, limit: int, last_id: Any = None, key: Optional[str] = None,
             sort: Optional[str] = None) -> Dict[str, Any]:
        """Next ``limit`` rows after ``last_id``: ``{"data", "last_id"}``."""
        key = key or self.get_pk()
        if sort is None:
            sort = self._order_sort(key)
            if sort is None:
                sort = "desc"
                self.order(key, sort)
        else:
            self.order(key, sort)

        op = ">" if sort.lower() == "asc" else "<"
        results = self.when(
            last_id is not None, lambda query, *args: query.where(key, op, last_id)
        ).limit(limit).select()

        rows = list(results)
        last = rows[-1][key] if rows else None
        return {"data": results, "last_id": last}

    # ── Writes ───────────────────────────────────────────────────────

    def insert(self, data: Optional[Dict[str, Any]] = None, get_last_ins_id: bool = False) -> Any:
        """Insert one row; returns the affected count or the new id."""
        if data:
            self.options["data"] = data
        return self.connection.insert(self, get_last_ins_id)

    def insert_get_id(self, data: Optional[Dict[str, Any]] = None) -> Any:
        return self.insert(data, True)

    def insert_all(self, dataset: Optional[List[Dict[str, Any]]] = None, limit: int = 0) -> int:
        """Batch insert; ``limit`` splits into chunks inside one transaction."""
        if not dataset:
            dataset = self.options.get("data") or []
        if not limit and str(self.options.get("limit") or "").isdigit():
            limit = int(self.options["limit"])
        return self.connection.insert_all(self, list(dataset), limit)

    def select_insert(self, fields: List[str], table: str) -> int:
        """``INSERT INTO table (fields) SELECT ...`` from this query."""
        return self.connection.select_insert(self, fields, table)

    def save(self, data: Optional[Dict[str, Any]] = None, force_insert: bool = False) -> Any:
        """Update when a condition or the primary key is present, else insert."""
        if force_insert:
            return self.insert(data)

        self.options["data"] = {**(self.options.get("data") or {}), **(data or {})}
        if self.options.get("where"):
            is_update = True
        else:
            is_update = self.parse_update_data(self.options["data"])
        return self.update() if is_update else self.insert()

    def update(self, data: Optional[Dict[str, Any]] = None) -> int:
        if data:
            self.options["data"] = {**(self.options.get("data") or {}), **data}
        if not self.options.get("where"):
            self.parse_update_data(self.options.get("data") or {})
        if not self.options.get("where"):
            raise DbFault("miss update condition", config=self.connection.get_config())
        return self.connection.update(self)

    def delete(self, data: Any = None) -> int:
        """
        Delete matching rows.

        ``data`` is a primary key value or list of them; ``True`` deletes
        without a condition. A soft delete rule turns this into an UPDATE.
        """
        if data is not None and data is not True:
            self.parse_pk_where(data)
        if data is not True and not self.options.get("where"):
            raise DbFault("no delete condition", config=self.connection.get_config())

        soft_delete = self.options.get("soft_delete")
        if soft_delete:
            field, condition = soft_delete
            if isinstance(condition, (list, tuple)):
                stamp = getattr(self.model, "soft_delete_stamp", None)
                value = stamp() if stamp is not None else None
            else:
                value = condition
                self.options["soft_delete"] = None
            if value is not None:
                self.options["data"] = {field.split(".")[-1]: value}
                return self.connection.update(self)
        return self.connection.delete(self)

    def union(self, union: Any, all: bool = False) -> "BaseQuery":
        current = self.options.get("union") or {}
        items = list(current.get("items") or [])
        items.extend(union if isinstance(union, list) else [union])
        self.options["union"] = {"type": "UNION ALL" if all else "UNION", "items": items}
        return self

    def union_all(self, union: Any) -> "BaseQuery":
        return self.union(union, True)

    # ── Reads ────────────────────────────────────────────────────────

    def value(self, field: str, default: Any = None) -> Any:
        return self.connection.value(self, field, default)

    def column(self, field: Union[str, List[str]], key: str = "") -> Any:
        """
        Column values. With ``key`` returns a dict keyed by that column;
        several fields yield whole rows as values.
        """
        return self.connection.column(self, field, key)

    def select(self, data: Any = None) -> Any:
        if data is not None:
            self.parse_pk_where(data)

        result_set = self.connection.select(self)
        if self.options.get("fail") and not result_set:
            self._throw_not_found()
        result_set = self._apply_filters(result_set)

        if self.model is not None:
            return self._result_set_to_model_collection(result_set)
        return self._result_set(result_set)

    def find(self, data: Any = None) -> Any:
        """
        First matching row, ``None`` when nothing matches (see
        ``find_or_fail`` / ``find_or_empty``). A query without any
        condition or order finds nothing.
        """
        if data is not None:
            self.parse_pk_where(data)

        if not self.options.get("where") and not self.options.get("order"):
            result = None
        else:
            result = self.connection.find(self)
            if result and self._apply_filters([result]) == []:
                result = None

        if not result:
            return self._result_to_empty()
        if self.model is not None:
            return self._result_to_model(result)
        return self._result(result)

    def get_by(self, field: str, value: Any) -> Any:
        return self.where(field, "=", value).find()

    def get_field_by(self, field: str, value: Any, column: str) -> Any:
        return self.where(field, "=", value).value(column)

    def get_last_sql(self) -> str:
        return self.connection.get_last_sql()

    def get_num_rows(self) -> int:
        return self.connection.get_num_rows()

    def get_last_ins_id(self, sequence: Optional[str] = None) -> Any:
        return self.connection.get_last_ins_id(self, sequence)

    # ── Option normalization ─────────────────────────────────────────

    def parse_options(self) -> Dict[str, Any]:
        """Fill every option with its default and resolve table / page."""
        options = normalize_options(self.options)
        if not options.get("table"):
            options["table"] = self.get_table()
        if options.get("strict") is None:
            options["strict"] = self.connection.get_config("fields_strict")

        page = options.get("page")
        if page:
            current, list_rows = page
            current = current if current and current > 0 else 1
            if not list_rows:
                limit = str(options.get("limit") or "")
                list_rows = int(limit) if limit.isdigit() else 20
            offset = list_rows * (current - 1)
            options["limit"] = f"{offset},{list_rows}"
        return options

    def parse_update_data(self, data: Dict[str, Any]) -> bool:
        """Move primary key values out of ``data`` into the condition."""
        pk = self.get_pk()
        if isinstance(pk, str):
            if data.get(pk) is not None:
                self.where(pk, "=", data.pop(pk))
                return True
            return False

        if isinstance(pk, (list, tuple)):
            is_update = False
            for field in pk:
                if data.get(field) is None:
                    raise DbFault("miss complex primary data", config=self.connection.get_config())
                self.where(field, "=", data.pop(field))
                is_update = True
            return is_update
        return False

    def parse_pk_where(self, data: Any) -> None:
        """Turn a primary key value (or list / dict of values) into a condition."""
        pk = self.get_pk()
        if isinstance(pk, str):
            if isinstance(data, (list, tuple, set)):
                self.where(pk, "in", list(data))
            else:
                self.where(pk, "=", data)
        elif isinstance(pk, (list, tuple)) and isinstance(data, dict):
            for field in pk:
                if field not in data:
                    raise DbFault("miss complex primary data", config=self.connection.get_config())
                self.where(field, "=", data[field])

    # ── Binds ────────────────────────────────────────────────────────

    def bind(self, value: Union[Dict[str, Any], List[Any]]) -> "BaseQuery":
        self._binder.bind(value)
        return self

    def bind_value(self, value: Any, type: Optional[str] = None, name: Optional[str] = None) -> str:
        return self._binder.bind_value(value, type, name)

    def is_bind(self, key: str) -> bool:
        return self._binder.is_bind(key)

    def get_bind(self, clear: bool = True) -> Dict[str, Any]:
        return self._binder.get_bind(clear)

    def bind_params(self, sql: str, bind: Any) -> str:
        return self._binder.bind_params(sql, bind)

    @staticmethod
    def call_modifier(modifier: Any, query: Any, *args: Any) -> Any:
        return call_modifier(modifier, query, *args)

    # ── Table field info ─────────────────────────────────────────────

    def get_table_fields(self, table: str = "") -> List[str]:
        return self.connection.get_table_fields(table or self.get_main_table())

    def get_fields_type(self, table: str = "") -> Dict[str, str]:
        if not table and self.options.get("field_type"):
            return self.options["field_type"]
        return self.connection.get_fields_type(table or self.get_main_table())

    def get_field_type(self, field: str) -> Optional[str]:
        return self.get_fields_type().get(field)

    def get_fields_bind_type(self) -> Dict[str, str]:
        return {name: bind_type_of(type) for name, type in self.get_fields_type().items()}

    def get_pk(self) -> Any:
        """Explicit pk, else the model's, else the introspected one."""
        if self._pk:
            return self._pk
        if self.model is not None:
            return self.model.get_pk()
        table = self.get_main_table()
        if not table or "(" in table:
            return None
        return self.connection.get_pk(table)

    # ── SQL ──────────────────────────────────────────────────────────

    def build_sql(self, sub: bool = True, bind_to: Optional["BaseQuery"] = None) -> str:
        """
        Render this query as a SELECT.

        With ``bind_to`` placeholders stay and the binds move into that
        query (sub-query embedding); otherwise values are inlined.
        """
        self.parse_options()
        sql = self.connection.get_builder().select(self)
        bind = self.get_bind()
        if bind_to is not None:
            bind_to.bind(bind)
        else:
            sql = self.connection.get_real_sql(sql, bind)
        return f"( {sql} )" if sub else sql

    # ── Transactions ─────────────────────────────────────────────────

    def transaction(self, callback: Callable[..., Any]) -> Any:
        return self.connection.transaction(callback)

    def transaction_xa(self, callback: Callable[..., Any], connections: Optional[List[Any]] = None) -> Any:
        return self.connection.transaction_xa(callback, connections or [])

    def start_trans(self) -> None:
        self.connection.start_trans()

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} table={self.get_table()!r}>"
