"""
Quarry Connection — one logical database connection.

A ``Connection`` owns the physical links to one configured database
(a single host, or several hosts with read/write splitting), the
transaction depth, the reconnect policy, the schema introspection memo
and the query-cache integration. Queries render their SQL through the
connection's ``Builder`` and execute it here.

Dialect specifics (introspection queries, savepoints, XA) live in the
connectors under ``quarry.db.connectors``.

Usage:
    conn = manager.connect("sqlite")
    conn.table("users").where("id", 1).find()
    conn.query("SELECT * FROM users WHERE id = ?", [1])

    conn.start_trans()
    try:
        conn.table("users").insert({"name": "a"})
        conn.commit()
    except Exception:
        conn.rollback()
        raise
"""

from __future__ import annotations

import copy
import logging
import random
import re
import time
import uuid
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Type, Union

from ..cache import CacheItem, QueryKeyBuilder
from ..faults import BindParamFault, DatabaseConnectionFault, DbFault, Fault, QueryFault
from ..utils import import_string
from .backends.base import DatabaseAdapter, Statement
from .binder import PARAM_BOOL, PARAM_FLOAT, PARAM_INT, PARAM_STR, bind_type_of, render_real_sql
from .builder import BUILDERS, Builder
from .query.cursor import Cursor
from .query.query import Query
from .raw import Raw

if TYPE_CHECKING:
    from .manager import DbManager
    from .query.base import BaseQuery

logger = logging.getLogger("quarry.db.connection")
sql_logger = logging.getLogger("quarry.db.sql")

__all__ = ["Connection", "DEFAULT_CONFIG", "BREAK_MATCH_STR", "field_type_of"]

DEFAULT_CONFIG: Dict[str, Any] = {
    "type": "",
    "hostname": "",
    "database": "",
    "username": "",
    "password": "",
    "hostport": "",
    "dsn": "",
    "params": {},
    "charset": "utf8mb4",
    "prefix": "",
    "deploy": 0,
    "rw_separate": False,
    "master_num": 1,
    "slave_no": "",
    "read_master": False,
    "fields_strict": True,
    "fields_cache": False,
    "trigger_sql": True,
    "builder": "",
    "query": "",
    "break_reconnect": False,
    "break_match_str": [],
}

# Driver error messages meaning the link is gone
BREAK_MATCH_STR: Tuple[str, ...] = (
    "server has gone away",
    "no connection to the server",
    "Lost connection",
    "is dead or not enabled",
    "Error while sending",
    "decryption failed or bad record mac",
    "server closed the connection unexpectedly",
    "SSL connection has been closed unexpectedly",
    "Error writing data to the connection",
    "Resource deadlock avoided",
    "failed with errno",
)

# Host settings that may hold a comma separated list (one entry per host)
_HOST_KEYS = ("username", "password", "hostname", "hostport", "database", "dsn", "charset")

MAX_RECONNECT = 4

_BINDABLE = (type(None), str, int, float, bool, Decimal, datetime, date, dt_time, bytes, bytearray, memoryview)

_FLOAT_RE = re.compile(r"(double|float|decimal|real|numeric)", re.I)
_INT_RE = re.compile(r"(int|serial|bit)", re.I)
_BOOL_RE = re.compile(r"bool", re.I)

_EMPTY_INFO: Dict[str, Any] = {"fields": [], "type": {}, "bind": {}, "pk": None, "autoinc": None}


def field_type_of(sql_type: str) -> str:
    """
    Classify a column's SQL type as ``int``, ``float``, ``bool``,
    ``string``, ``date``, ``datetime`` or ``timestamp``.
    """
    sql_type = (sql_type or "").lower()
    if sql_type.startswith("set") or sql_type.startswith("enum"):
        return "string"
    if _FLOAT_RE.search(sql_type):
        return "float"
    if _INT_RE.search(sql_type):
        return "int"
    if _BOOL_RE.search(sql_type):
        return "bool"
    if sql_type.startswith("timestamp"):
        return "timestamp"
    if sql_type.startswith("datetime"):
        return "datetime"
    if "date" in sql_type:
        return "date"
    return "string"


def _stream(statement: Statement) -> Iterator[Dict[str, Any]]:
    try:
        yield from statement
    finally:
        statement.close()


class Connection:
    """
    Base connection.

    Connectors set ``adapter_class`` (the driver adapter), ``builder_type``
    (key into ``BUILDERS``) and implement ``get_fields`` / ``get_tables``.
    """

    adapter_class: Type[DatabaseAdapter] = DatabaseAdapter
    builder_type: str = "mysql"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config: Dict[str, Any] = {**copy.deepcopy(DEFAULT_CONFIG), **(config or {})}
        self.db: Optional["DbManager"] = None
        self.cache: Any = None

        self._links: Dict[int, DatabaseAdapter] = {}
        self._link: Optional[DatabaseAdapter] = None
        self._link_read: Optional[DatabaseAdapter] = None
        self._link_write: Optional[DatabaseAdapter] = None
        self._statement: Optional[Statement] = None

        self._trans_times = 0
        self._reconnect_times = 0
        self._read_master = False
        self._num_rows = 0
        self._query_str = ""
        self._bind: Dict[str, Any] = {}
        self._query_start_time = 0.0

        self._info: Dict[str, Dict[str, Any]] = {}
        self._key_builder = QueryKeyBuilder()
        self._break_match_str: List[str] = list(BREAK_MATCH_STR)

        builder_class = import_string(self.config.get("builder")) if self.config.get("builder") else BUILDERS[self.builder_type]
        self.builder: Builder = builder_class(self)

    # ── Wiring ───────────────────────────────────────────────────────

    def set_db(self, db: "DbManager") -> "Connection":
        self.db = db
        return self

    def set_cache(self, cache: Any) -> "Connection":
        self.cache = cache
        return self

    def get_cache(self) -> Any:
        return self.cache

    def get_config(self, name: str = "") -> Any:
        if not name:
            return self.config
        return self.config.get(name)

    def get_builder(self) -> Builder:
        return self.builder

    def get_query_class(self) -> Type["BaseQuery"]:
        return import_string(self.config.get("query")) if self.config.get("query") else Query

    def new_query(self) -> "BaseQuery":
        return self.get_query_class()(self)

    def table(self, table: Any) -> "BaseQuery":
        return self.new_query().table(table)

    def name(self, name: str) -> "BaseQuery":
        return self.new_query().name(name)

    def view(self, *args: Any, **kwargs: Any) -> "BaseQuery":
        return self.new_query().view(*args, **kwargs)

    def parse_dsn(self, config: Dict[str, Any]) -> str:
        """Human readable DSN of one host config (logs and faults only)."""
        if config.get("dsn"):
            return str(config["dsn"])
        host = config.get("hostname") or "127.0.0.1"
        if config.get("hostport"):
            host = f"{host}:{config['hostport']}"
        return f"{self.builder_type}://{host}/{config.get('database') or ''}"

    # ── Links ────────────────────────────────────────────────────────

    def connect(self, config: Optional[Dict[str, Any]] = None, link_num: int = 0,
                auto_connection: Optional[Dict[str, Any]] = None) -> DatabaseAdapter:
        """
        Open (or reuse) the link in slot ``link_num``.

        When it fails and ``auto_connection`` (the master host config)
        is given the slot is retried once against that host.
        """
        if link_num in self._links:
            return self._links[link_num]

        config = {**self.config, **(config or {})}
        for item in config.get("break_match_str") or []:
            if item not in self._break_match_str:
                self._break_match_str.append(item)

        dsn = self.parse_dsn(config)
        start = time.perf_counter()
        adapter = self.adapter_class()
        try:
            adapter.connect(config)
        except ImportError:
            raise
        except Exception as exc:
            if auto_connection:
                self._log(f"Connect to {dsn} failed: {exc}", "error")
                return self.connect(auto_connection, link_num)
            raise DatabaseConnectionFault(dsn, str(exc)) from exc

        self._links[link_num] = adapter
        if self.config.get("trigger_sql"):
            self._query_start_time = start
            self.trigger(f"CONNECT:[ UseTime:{time.perf_counter() - start:.6f}s ] {dsn}")
        return adapter

    def init_connect(self, master: bool = True) -> None:
        """Select the link for the next statement."""
        if self.config.get("deploy"):
            if master or self._trans_times:
                if self._link_write is None:
                    self._link_write = self.multi_connect(True)
                self._link = self._link_write
            else:
                if self._link_read is None:
                    self._link_read = self.multi_connect(False)
                self._link = self._link_read
        elif self._link is None:
            self._link = self.connect()

    def multi_connect(self, master: bool = False) -> DatabaseAdapter:
        """
        Connect to one host of a distributed (``deploy``) setup.

        The first ``master_num`` hosts are masters. With ``rw_separate``
        reads go to ``slave_no`` or a random slave; otherwise any host
        serves both.
        """
        hosts: Dict[str, List[str]] = {}
        for name in _HOST_KEYS:
            value = self.config.get(name)
            hosts[name] = [item.strip() for item in str(value).split(",")] if value not in (None, "") else []

        count = max(1, len(hosts["hostname"]))
        master_num = max(1, int(self.config.get("master_num") or 1))
        m = random.randint(0, min(master_num, count) - 1)

        if self.config.get("rw_separate"):
            slave_no = self.config.get("slave_no")
            if master:
                r = m
            elif isinstance(slave_no, int) or (isinstance(slave_no, str) and slave_no.isdigit()):
                r = int(slave_no)
            elif count > master_num:
                r = random.randint(master_num, count - 1)
            else:
                r = m
        else:
            r = random.randint(0, count - 1)

        def host_config(index: int) -> Dict[str, Any]:
            return {
                name: values[index] if index < len(values) else values[0]
                for name, values in hosts.items() if values
            }

        db_master = host_config(m) if m != r else None
        return self.connect(host_config(r), r, db_master)

    def close(self) -> "Connection":
        """Close every link and forget the transaction state."""
        self.free()
        for adapter in list(self._links.values()):
            try:
                adapter.close()
            except adapter.Error as exc:
                logger.warning("Error closing link: %s", exc)
        self._links = {}
        self._link = None
        self._link_read = None
        self._link_write = None
        self._trans_times = 0
        return self

    def free(self) -> None:
        if self._statement is not None:
            self._statement.close()
        self._statement = None

    # ── Execution ────────────────────────────────────────────────────

    def get_statement(self, sql: str, bind: Optional[Dict[str, Any]] = None, master: bool = False,
                      procedure: bool = False) -> Statement:
        """
        Execute ``sql`` and return its statement.

        A lost connection outside a transaction is reconnected and the
        statement retried, at most ``MAX_RECONNECT`` times in a row;
        inside a transaction the transaction state is dropped and the
        error raised.
        """
        bind = bind or {}
        try:
            self.init_connect(self._read_master or master)
            self._query_str = sql
            self._bind = bind
            if self.db is not None:
                self.db.update_query_times()
            self._query_start_time = time.perf_counter()

            params = self._bind_params(bind)
            if procedure:
                statement = self._link.call(sql, params)
            else:
                statement = self._link.execute(sql, params)

            if self.config.get("trigger_sql"):
                self.trigger("", master)
            self._reconnect_times = 0
            self._statement = statement
            return statement
        except Fault:
            raise
        except Exception as exc:
            if self._trans_times > 0 and self.is_break(exc):
                self._trans_times = 0
            elif self._trans_times == 0 and self._reconnect_times < MAX_RECONNECT and self.is_break(exc):
                self._reconnect_times += 1
                logger.warning("Connection lost (%s), reconnect attempt %d", exc, self._reconnect_times)
                return self.close().get_statement(sql, bind, master, procedure)
            self._reconnect_times = 0
            raise QueryFault(exc, config=self.config, sql=self.get_last_sql()) from exc

    def _bind_params(self, bind: Dict[str, Any]) -> Dict[str, Any]:
        """Driver parameters from a bind table ``{name: (value, type)}``."""
        params: Dict[str, Any] = {}
        for name, item in bind.items():
            if isinstance(item, (tuple, list)) and len(item) == 2:
                value, type = item
            else:
                value, type = item, PARAM_STR

            try:
                if type == PARAM_INT and value == "":
                    value = 0
                elif type == PARAM_FLOAT and isinstance(value, str):
                    value = float(value)
                elif type == PARAM_BOOL and value is not None:
                    value = bool(value)
            except ValueError as exc:
                raise BindParamFault(
                    f"Error occurred when binding parameters {name}",
                    config=self.config, sql=self.get_last_sql(), bind=bind,
                ) from exc

            if not isinstance(value, _BINDABLE):
                raise BindParamFault(
                    f"Error occurred when binding parameters {name}",
                    config=self.config, sql=self.get_last_sql(), bind=bind,
                )
            params[name] = value
        return params

    def is_break(self, exc: BaseException) -> bool:
        """Whether ``exc`` means the link is gone."""
        if not self.config.get("break_reconnect"):
            return False
        message = str(exc).lower()
        return any(item.lower() in message for item in self._break_match_str)

    def _query_statement(self, query: "BaseQuery", sql: str, bind: Optional[Dict[str, Any]] = None) -> Statement:
        options = query.get_options()
        master = bool(options.get("master"))
        procedure = bool(options.get("procedure")) or sql.strip()[:4].lower() in ("call", "exec")
        return self.get_statement(sql, bind, master, procedure)

    def pdo_query(self, query: "BaseQuery", sql: Union[str, Callable[["BaseQuery"], str]],
                  bind: Optional[Dict[str, Any]] = None, master: Optional[bool] = None) -> List[Any]:
        """Run a read statement (cache aware) and fetch every row."""
        options = query.parse_options()
        if callable(sql):
            sql = sql(query)
            bind = query.get_bind()

        cache_item: Optional[CacheItem] = None
        if options.get("cache") and self.cache is not None:
            cache_item = self.parse_cache(query, options["cache"], sql=sql, bind=bind)
            data = self.cache.get(cache_item.get_key())
            if data is not None:
                return copy.deepcopy(data)

        if master is None:
            master = bool(options.get("master"))
        procedure = bool(options.get("procedure")) or sql.strip()[:4].lower() in ("call", "exec")

        statement = self.get_statement(sql, bind, master, procedure)
        result_set = self._get_result(statement, procedure)

        if cache_item is not None and result_set:
            cache_item.set(copy.deepcopy(result_set))
            self.cache_data(cache_item)
        return result_set

    def _get_result(self, statement: Statement, procedure: bool = False) -> List[Any]:
        if procedure:
            items = []
            while True:
                result = statement.fetch_all()
                if result:
                    items.append(result)
                if not statement.next_set():
                    break
            self._num_rows = len(items)
            return items

        result = statement.fetch_all()
        self._num_rows = len(result)
        return result

    def pdo_execute(self, query: "BaseQuery", sql: str, bind: Optional[Dict[str, Any]] = None,
                    origin: bool = False) -> int:
        """Run a write statement; returns the affected row count."""
        if origin:
            query.parse_options()
        statement = self._query_statement(query.master(True), sql, bind)
        if not origin and self.config.get("deploy") and self.config.get("read_master"):
            self._read_master = True

        self._num_rows = statement.row_count

        cache = query.get_options("cache")
        if cache and self.cache is not None:
            self._clear_write_cache(query, cache)
        return self._num_rows

    def _clear_write_cache(self, query: "BaseQuery", cache: Sequence[Any]) -> None:
        """
        Drop the cached read a write touched: by exact key if there is
        one, else by tag.

        A derived key (``cache(True)``) is exact only for a primary key
        condition; any other derived key depends on the read statement
        and cannot be rebuilt from the write.
        """
        key, _, tag = cache
        if isinstance(key, CacheItem):
            key, tag = key.get_key(), key.get_tag() or tag
        elif key is True:
            key = self.get_cache_key(query) if query.get_options("key") not in (None, "") else None

        if key:
            if self.cache.has(str(key)):
                self.cache.delete(str(key))
        elif tag and hasattr(self.cache, "tag"):
            self.cache.tag(tag).clear()
        else:
            logger.debug("Write cache option has neither an exact key nor a tag")

    def query(self, sql: str, bind: Union[Dict[str, Any], List[Any], None] = None, master: bool = False) -> List[Any]:
        """Run a raw read statement with ``?`` or ``:name`` placeholders."""
        query = self.new_query()
        sql = query.bind_params(sql, bind)
        return self.pdo_query(query, sql, query.get_bind(), master)

    def execute(self, sql: str, bind: Union[Dict[str, Any], List[Any], None] = None) -> int:
        """Run a raw write statement."""
        query = self.new_query()
        sql = query.bind_params(sql, bind)
        return self.pdo_execute(query, sql, query.get_bind(), True)

    def cursor(self, query: "BaseQuery") -> Cursor:
        """Stream the query's rows one at a time."""
        options = query.parse_options()
        sql = self.builder.select(query)
        condition = (options.get("where") or {}).get("AND")
        statement = self._query_statement(query, sql, query.get_bind())

        model = query.get_model()
        transform = None
        if model is not None:
            def transform(row: Dict[str, Any]) -> Any:
                return model.new_instance(row, condition)
        return Cursor(_stream(statement), transform)

    # ── Events / logging ─────────────────────────────────────────────

    def trigger(self, sql: str = "", master: Optional[bool] = False) -> None:
        """Report an executed statement to the SQL listeners."""
        runtime = time.perf_counter() - self._query_start_time
        sql = sql or self.get_last_sql()
        if not self.config.get("deploy"):
            master = None

        listeners = self.db.get_listen() if self.db is not None else []
        if not listeners:
            self._log_sql(sql, runtime, master)
        for callback in listeners:
            callback(sql, runtime, master)

    def _log_sql(self, sql: str, runtime: float, master: Optional[bool]) -> None:
        if "CONNECT:" in sql:
            self._log(sql)
            return
        tag = "" if master is None else ("master|" if master else "slave|")
        self._log(f"{sql} [ {tag}RunTime:{runtime:.6f}s ]")

    def _log(self, message: str, type: str = "sql") -> None:
        if self.db is not None:
            self.db.log(message, type)
        else:
            sql_logger.log(logging.ERROR if type == "error" else logging.DEBUG, message)

    def _db_event(self, event: str, query: "BaseQuery") -> bool:
        if self.db is None:
            return True
        return self.db.trigger(event, query) is not False

    # ── Query cache ──────────────────────────────────────────────────

    def parse_cache(self, query: "BaseQuery", cache: Sequence[Any], method: str = "", sql: str = "",
                    bind: Optional[Dict[str, Any]] = None) -> CacheItem:
        key, expire, tag = cache
        if isinstance(key, CacheItem):
            return key
        if key is True:
            key = self.get_cache_key(query, method, sql, bind)
        item = CacheItem(str(key))
        item.expire(expire)
        item.tag(tag)
        return item

    def get_cache_key(self, query: "BaseQuery", method: str = "", sql: str = "",
                      bind: Optional[Dict[str, Any]] = None) -> str:
        """
        ``quarry_{database}.{table}|{pk}`` for a primary key lookup,
        else a hash of the rendered statement and its binds.
        """
        key = query.get_options("key")
        if key not in (None, "") and not method:
            return self._key_builder.for_pk(self.config.get("database") or "", query.get_main_table(), key)
        return self._key_builder.for_sql(f"{method}:{sql}" if method else sql, bind)

    def cache_data(self, item: CacheItem) -> None:
        if item.get_tag() and hasattr(self.cache, "tag"):
            self.cache.tag(item.get_tag()).set(item.get_key(), item.get(), item.ttl())
        else:
            self.cache.set(item.get_key(), item.get(), item.ttl())

    # ── Schema info ──────────────────────────────────────────────────

    def get_fields(self, table: str) -> Dict[str, Dict[str, Any]]:
        """
        Column details ``{name: {name, type, notnull, default, primary,
        autoinc, comment}}`` of ``table``.
        """
        raise NotImplementedError

    def get_tables(self, database: str = "") -> List[str]:
        raise NotImplementedError

    def get_table_fields_info(self, table: str) -> Dict[str, Any]:
        fields = self.get_fields(table)
        types: Dict[str, str] = {}
        pk: List[str] = []
        autoinc: Optional[str] = None
        for name, column in fields.items():
            types[name] = field_type_of(column.get("type") or "")
            if column.get("primary"):
                pk.append(name)
            if column.get("autoinc"):
                autoinc = name
        return {
            "type": types,
            "pk": (pk[0] if len(pk) == 1 else pk) if pk else None,
            "autoinc": autoinc,
        }

    def get_schema_info(self, table: str, force: bool = False) -> Dict[str, Any]:
        """
        ``{fields, type, bind, pk, autoinc}`` of ``table``, memoized per
        ``database.table`` and persisted in the cache store when
        ``fields_cache`` is on.
        """
        schema = table if "." in table else f"{self.config.get('database') or ''}.{table}"
        if schema not in self._info or force:
            use_cache = bool(self.config.get("fields_cache")) and self.cache is not None
            cache_key = self.get_schema_cache_key(schema)
            info = self.cache.get(cache_key) if use_cache and not force else None
            if not info:
                info = self.get_table_fields_info(table)
                if use_cache:
                    self.cache.set(cache_key, info)

            types = dict(info["type"])
            self._info[schema] = {
                "fields": list(types),
                "type": types,
                "bind": {name: bind_type_of(type) for name, type in types.items()},
                "pk": info.get("pk"),
                "autoinc": info.get("autoinc"),
            }
        return self._info[schema]

    def get_schema_cache_key(self, schema: str) -> str:
        database, _, table = schema.rpartition(".")
        return self._key_builder.for_schema(
            self.config.get("hostname") or "", self.config.get("hostport") or "", database, table,
        )

    def get_table_info(self, table: Any, fetch: str = "") -> Any:
        """Schema info of the first table of ``table`` (or one entry of it)."""
        if isinstance(table, dict):
            table = next(iter(table), "")
        if isinstance(table, (list, tuple)):
            table = table[0] if table else ""
        if not table or isinstance(table, Raw) or "," in table or ")" in table:
            info = copy.deepcopy(_EMPTY_INFO)
        else:
            info = self.get_schema_info(table.split(" ")[0])
        return info[fetch] if fetch else info

    def get_pk(self, table: Any) -> Any:
        return self.get_table_info(table, "pk")

    def get_auto_inc(self, table: Any) -> Optional[str]:
        return self.get_table_info(table, "autoinc")

    def get_table_fields(self, table: Any) -> List[str]:
        return self.get_table_info(table, "fields")

    def get_fields_type(self, table: Any, field: Optional[str] = None) -> Any:
        types = self.get_table_info(table, "type")
        return types.get(field) if field else types

    def get_fields_bind(self, table: Any) -> Dict[str, str]:
        return self.get_table_info(table, "bind")

    # ── CRUD ─────────────────────────────────────────────────────────

    def find(self, query: "BaseQuery") -> Dict[str, Any]:
        """First row of the query, ``{}`` when none (or a listener cancels)."""
        if not self._db_event("before_find", query):
            return {}
        result_set = self.pdo_query(query, lambda q: self.builder.select(q, True))
        return result_set[0] if result_set else {}

    def select(self, query: "BaseQuery") -> List[Dict[str, Any]]:
        if not self._db_event("before_select", query):
            return []
        return self.pdo_query(query, lambda q: self.builder.select(q))

    def insert(self, query: "BaseQuery", get_last_ins_id: bool = False) -> Any:
        """Insert one row; the new id instead of the count with ``get_last_ins_id``."""
        options = query.parse_options()
        sql = self.builder.insert(query)
        result = 0 if sql == "" else self.pdo_execute(query, sql, query.get_bind())

        if result:
            last_ins_id = self.get_last_ins_id(query, options.get("sequence"))
            data = dict(options.get("data") or {})
            if last_ins_id:
                pk = self.get_auto_inc(query.get_main_table())
                if pk:
                    data[pk] = last_ins_id
            query.set_option("data", data)
            self._db_event("after_insert", query)
            if get_last_ins_id and last_ins_id:
                return last_ins_id
        return result

    def insert_all(self, query: "BaseQuery", dataset: List[Dict[str, Any]], limit: int = 0) -> int:
        """
        Batch insert. With ``limit`` (forced to 1000 for 5000+ rows) the
        rows go in chunks inside one transaction.
        """
        if not isinstance(dataset, list) or not dataset:
            return 0
        options = query.parse_options()
        replace = bool(options.get("replace"))
        if not limit and len(dataset) >= 5000:
            limit = 1000

        if limit:
            self.start_trans()
            try:
                count = 0
                for offset in range(0, len(dataset), limit):
                    sql = self.builder.insert_all(query, dataset[offset:offset + limit], replace)
                    if sql:
                        count += self.pdo_execute(query, sql, query.get_bind())
                self.commit()
            except Exception:
                self.rollback()
                raise
            return count

        sql = self.builder.insert_all(query, dataset, replace)
        return self.pdo_execute(query, sql, query.get_bind()) if sql else 0

    def select_insert(self, query: "BaseQuery", fields: List[str], table: str) -> int:
        query.parse_options()
        sql = self.builder.select_insert(query, fields, table)
        return self.pdo_execute(query, sql, query.get_bind())

    def update(self, query: "BaseQuery") -> int:
        query.parse_options()
        sql = self.builder.update(query)
        result = 0 if sql == "" else self.pdo_execute(query, sql, query.get_bind())
        if result:
            self._db_event("after_update", query)
        return result

    def delete(self, query: "BaseQuery") -> int:
        query.parse_options()
        sql = self.builder.delete(query)
        result = self.pdo_execute(query, sql, query.get_bind())
        if result:
            self._db_event("after_delete", query)
        return result

    def value(self, query: "BaseQuery", field: Any, default: Any = None, one: bool = True) -> Any:
        """Single value of the first row, ``default`` when no row matches."""
        options = query.parse_options()
        field_option = options.get("field")
        group_option = options.get("group")

        options["field"] = [field]
        options["group"] = ""
        sql = self.builder.select(query, one)
        bind = query.get_bind()
        options["field"] = field_option
        options["group"] = group_option

        cache_item: Optional[CacheItem] = None
        if options.get("cache") and self.cache is not None:
            cache_item = self.parse_cache(query, options["cache"], "value", sql, bind)
            if self.cache.has(cache_item.get_key()):
                return self.cache.get(cache_item.get_key())

        statement = self.get_statement(sql, bind, bool(options.get("master")))
        row = statement.fetch_one()
        statement.close()
        result = next(iter(row.values()), None) if row else None

        if cache_item is not None:
            cache_item.set(result)
            self.cache_data(cache_item)
        return default if row is None else result

    def aggregate(self, query: "BaseQuery", aggregate: str, field: Any, force: bool = False) -> Any:
        """``COUNT`` / ``SUM`` / ... of ``field``; ``force`` casts to float."""
        distinct = ""
        if isinstance(field, str) and field.upper().startswith("DISTINCT "):
            distinct, field = "DISTINCT ", field.split(" ", 1)[1].strip()

        if isinstance(field, Raw):
            expr = self.builder.parse_raw(query, field)
        else:
            expr = self.builder.parse_key(query, field, True)
        alias = f"quarry_{aggregate.lower()}"
        result = self.value(query, Raw(f"{aggregate.upper()}({distinct}{expr}) AS {alias}"), 0, False)
        return float(result or 0) if force else result

    def column(self, query: "BaseQuery", column: Any, key: str = "") -> Any:
        """
        Values of ``column``: a list, or a dict keyed by ``key``. With
        several columns (or ``*``) whole rows are returned.
        """
        options = query.parse_options()
        field_option = options.get("field")

        if column in (None, "", "*"):
            columns: Union[str, List[str]] = "*"
        elif isinstance(column, str):
            columns = [item.strip() for item in column.split(",")]
        else:
            columns = list(column)

        if key and columns != "*":
            fields = list(dict.fromkeys(columns + [key]))
        else:
            fields = ["*"] if columns == "*" else columns
        options["field"] = fields

        sql = self.builder.select(query)
        bind = query.get_bind()
        options["field"] = field_option

        cache_item: Optional[CacheItem] = None
        if options.get("cache") and self.cache is not None:
            cache_item = self.parse_cache(query, options["cache"], "column", sql, bind)
            if self.cache.has(cache_item.get_key()):
                return self.cache.get(cache_item.get_key())

        statement = self.get_statement(sql, bind, bool(options.get("master")))
        result_set = statement.fetch_all()
        statement.close()

        if key and "." in key:
            key = key.split(".", 1)[1]

        if not result_set:
            result: Any = {} if key else []
        elif columns == "*" or len(columns) > 1:
            result = {row[key]: row for row in result_set} if key else result_set
        else:
            name = _column_name(columns[0])
            if key:
                result = {row[key]: row.get(name) for row in result_set}
            else:
                result = [row.get(name) for row in result_set]

        if cache_item is not None:
            cache_item.set(result)
            self.cache_data(cache_item)
        return result

    def batch_query(self, query: "BaseQuery", sqls: Sequence[str]) -> bool:
        """Run several raw statements in one transaction."""
        self.start_trans()
        try:
            for sql in sqls:
                self.pdo_execute(query, sql, query.get_bind(False))
            self.commit()
        except Exception:
            self.rollback()
            raise
        return True

    # ── Transactions ─────────────────────────────────────────────────

    def transaction(self, callback: Callable[["Connection"], Any]) -> Any:
        """Run ``callback(connection)`` in a (possibly nested) transaction."""
        self.start_trans()
        try:
            result = callback(self)
            self.commit()
            return result
        except Exception:
            self.rollback()
            raise

    def start_trans(self) -> None:
        """
        Begin a transaction; nested calls open savepoints ``trans{depth}``
        where the dialect supports them.
        """
        try:
            self.init_connect(True)
            self._trans_times += 1
            if self._trans_times == 1:
                self._link.begin()
            elif self._trans_times > 1 and self.supports_savepoint():
                self._link.savepoint(f"trans{self._trans_times}")
            self._reconnect_times = 0
        except Fault:
            raise
        except Exception as exc:
            self._trans_times = max(0, self._trans_times - 1)
            if self._trans_times == 0 and self._reconnect_times < MAX_RECONNECT and self.is_break(exc):
                self._reconnect_times += 1
                self.close().start_trans()
                return
            if self.is_break(exc):
                self._trans_times = 0
            raise QueryFault(exc, config=self.config, sql="BEGIN") from exc

    def commit(self) -> None:
        if self._trans_times == 0:
            return
        self.init_connect(True)
        if self._trans_times == 1:
            self._wrap(self._link.commit, "COMMIT")
        self._trans_times -= 1

    def rollback(self) -> None:
        if self._trans_times == 0:
            return
        self.init_connect(True)
        try:
            if self._trans_times == 1:
                self._wrap(self._link.rollback, "ROLLBACK")
            elif self.supports_savepoint():
                name = f"trans{self._trans_times}"
                self._wrap(lambda: self._link.rollback_to_savepoint(name), f"ROLLBACK TO SAVEPOINT {name}")
        finally:
            self._trans_times = max(0, self._trans_times - 1)

    def _wrap(self, action: Callable[[], Any], sql: str) -> Any:
        try:
            return action()
        except Exception as exc:
            raise QueryFault(exc, config=self.config, sql=sql) from exc

    def supports_savepoint(self) -> bool:
        return False

    @property
    def trans_times(self) -> int:
        """Current transaction depth (0 = none)."""
        return self._trans_times

    def transaction_xa(self, callback: Callable[["Connection"], Any], connections: Sequence[Any] = ()) -> Any:
        """
        Two-phase commit across ``connections`` (names or connections;
        this one when empty).
        """
        xid = f"xa{uuid.uuid4().hex[:13]}"
        links: List[Connection] = []
        for item in connections or [self]:
            if isinstance(item, str):
                if self.db is None:
                    raise DbFault(f"unknown connection: {item}", config=self.config)
                item = self.db.connect(item)
            links.append(item)

        for link in links:
            link.start_trans_xa(xid)
        try:
            result = callback(self)
            for link in links:
                link.prepare_xa(xid)
            for link in links:
                link.commit_xa(xid)
            return result
        except Exception:
            for link in links:
                link.rollback_xa(xid)
            raise

    def start_trans_xa(self, xid: str) -> None:
        raise DbFault("not support xa transaction", config=self.config)

    def prepare_xa(self, xid: str) -> None:
        raise DbFault("not support xa transaction", config=self.config)

    def commit_xa(self, xid: str) -> None:
        raise DbFault("not support xa transaction", config=self.config)

    def rollback_xa(self, xid: str) -> None:
        raise DbFault("not support xa transaction", config=self.config)

    # ── Introspection of the last statement ──────────────────────────

    def get_real_sql(self, sql: str, bind: Optional[Dict[str, Any]] = None) -> str:
        return render_real_sql(sql, bind).rstrip()

    def get_last_sql(self) -> str:
        return self.get_real_sql(self._query_str, self._bind)

    def get_num_rows(self) -> int:
        return self._num_rows

    def get_last_ins_id(self, query: "BaseQuery", sequence: Optional[str] = None) -> Any:
        if self._link is None:
            return None
        try:
            insert_id = self._link.last_insert_id(self._statement, sequence)
        except self._link.Error as exc:
            logger.debug("No last insert id: %s", exc)
            insert_id = None
        return self._auto_ins_id_type(query, insert_id)

    def _auto_ins_id_type(self, query: "BaseQuery", insert_id: Any) -> Any:
        if insert_id in (None, ""):
            return insert_id
        table = query.get_main_table()
        autoinc = self.get_auto_inc(table)
        if autoinc:
            type = self.get_fields_bind(table).get(autoinc)
            if type == PARAM_INT:
                return int(insert_id)
            if type == PARAM_FLOAT:
                return float(insert_id)
            if type == PARAM_STR:
                return str(insert_id)
        return insert_id

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.parse_dsn(self.config)} trans={self._trans_times}>"


def _column_name(column: str) -> str:
    """Result key of a selected column expression (``t.name AS n`` -> ``n``)."""
    column = column.strip()
    parts = re.split(r"\s+as\s+", column, flags=re.I)
    if len(parts) > 1:
        return parts[-1].strip("`\" ")
    if "." in column:
        column = column.split(".")[-1]
    return column.strip("`\" ")
