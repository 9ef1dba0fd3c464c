"""
Quarry DbManager — the application-owned database context.

One ``DbManager`` holds the database configuration, the named
``Connection`` instances built from it, the cache store, the SQL log,
SQL listeners, DB events and the ``ModelRegistry`` models resolve
through. Nothing here is global: the application creates a manager and
hands it to the models it binds.

Usage:
    db = DbManager({
        "default": "sqlite",
        "connections": {"sqlite": {"type": "sqlite", "database": ":memory:"}},
    })
    db.table("users").where("id", 1).find()
    db.connect("reports").query("SELECT 1")

    db.listen(lambda sql, runtime, master: print(sql, runtime))
    db.event("before_select", lambda query: ...)

    db.registry.register(User)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type, Union

from ..faults import ConfigFault
from ..utils import import_string
from .connection import Connection
from .connectors import CONNECTORS
from .raw import Raw

if TYPE_CHECKING:
    from ..config import ConfigLoader
    from ..models.registry import ModelRegistry
    from .query.base import BaseQuery

logger = logging.getLogger("quarry.db.manager")
sql_logger = logging.getLogger("quarry.db.sql")

__all__ = ["DbManager", "DB_EVENTS"]

DB_EVENTS = ("before_find", "before_select", "after_insert", "after_update", "after_delete")

_LOG_LEVELS = {
    "sql": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Manager-level keys copied into each connection config that lacks them
_INHERITED_KEYS = ("fields_cache", "trigger_sql", "fields_strict")


class DbManager:
    """
    Registry of named database connections.

    ``config`` is ``{"default": name, "connections": {name: {...}}}``
    plus optional manager-wide ``fields_cache`` / ``trigger_sql`` /
    ``fields_strict`` defaults.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, log: Optional[logging.Logger] = None,
                 registry: Optional["ModelRegistry"] = None):
        from ..models.registry import ModelRegistry

        self.config: Dict[str, Any] = dict(config or {})
        self.cache: Any = None
        self._log: Optional[logging.Logger] = log
        self._instances: Dict[str, Connection] = {}
        self._db_log: Dict[str, List[str]] = {}
        self._listen: List[Callable[..., Any]] = []
        self._events: Dict[str, List[Callable[..., Any]]] = {}
        self._query_times = 0
        self.registry: ModelRegistry = registry if registry is not None else ModelRegistry()
        self.registry.set_db(self)

    @classmethod
    def from_config(cls, loader: "ConfigLoader", log: Optional[logging.Logger] = None) -> "DbManager":
        """Build a manager from a loaded ``ConfigLoader``."""
        return cls(loader.to_dict(), log=log)

    # ── Configuration ────────────────────────────────────────────────

    def set_config(self, config: Dict[str, Any]) -> None:
        self.config = dict(config)

    def get_config(self, name: str = "", default: Any = None) -> Any:
        if not name:
            return self.config
        return self.config.get(name, default)

    def get_connection_config(self, name: str) -> Dict[str, Any]:
        connections = self.get_config("connections") or {}
        if name not in connections:
            raise ConfigFault(
                code="DB_CONNECTION_UNDEFINED",
                message=f"undefined db config: {name}",
                metadata={"connection": name},
            )
        config = dict(connections[name])
        for key in _INHERITED_KEYS:
            if key not in config and key in self.config:
                config[key] = self.config[key]
        return config

    # ── Collaborators ────────────────────────────────────────────────

    def set_cache(self, cache: Any) -> None:
        self.cache = cache
        for connection in self._instances.values():
            connection.set_cache(cache)

    def get_cache(self) -> Any:
        return self.cache

    def set_log(self, log: logging.Logger) -> None:
        self._log = log

    def log(self, message: str, type: str = "sql") -> None:
        """Record a log line: to the configured logger, else into the buffer."""
        level = _LOG_LEVELS.get(type, logging.INFO)
        if self._log is not None:
            self._log.log(level, message)
            return
        self._db_log.setdefault(type, []).append(message)
        sql_logger.log(level, message)

    def get_db_log(self, clear: bool = False) -> Dict[str, List[str]]:
        logs = self._db_log
        if clear:
            self._db_log = {}
        return logs

    def listen(self, callback: Callable[..., Any]) -> None:
        """Register an SQL listener called with ``(sql, runtime, master)``."""
        self._listen.append(callback)

    def get_listen(self) -> List[Callable[..., Any]]:
        return self._listen

    def raw(self, value: str, bind: Optional[List[Any]] = None) -> Raw:
        return Raw(value, bind)

    # ── Query counter ────────────────────────────────────────────────

    def update_query_times(self) -> None:
        self._query_times += 1

    def clear_query_times(self) -> None:
        self._query_times = 0

    def get_query_times(self) -> int:
        return self._query_times

    # ── DB events ────────────────────────────────────────────────────

    def event(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for one of ``DB_EVENTS``."""
        self._events.setdefault(event, []).append(callback)

    def trigger(self, event: str, *params: Any) -> Any:
        """
        Call every callback of ``event``.

        Returns ``False`` when any callback returned ``False`` (which
        cancels ``find`` / ``select``), otherwise ``None``.
        """
        cancelled = False
        for callback in self._events.get(event, []):
            if callback(*params) is False:
                cancelled = True
        return False if cancelled else None

    # ── Connections ──────────────────────────────────────────────────

    def connect(self, name: Optional[str] = None, force: bool = False) -> Connection:
        """The connection named ``name`` (the default one when empty)."""
        return self._instance(name, force)

    def _instance(self, name: Optional[str] = None, force: bool = False) -> Connection:
        if not name:
            name = self.get_config("default", "mysql")
        if force or name not in self._instances:
            self._instances[name] = self._create_connection(name)
        return self._instances[name]

    def _create_connection(self, name: str) -> Connection:
        config = self.get_connection_config(name)
        connection_class = self._connection_class(config.get("type") or "mysql")

        connection = connection_class(config)
        connection.set_db(self)
        if self.cache is not None:
            connection.set_cache(self.cache)
        logger.debug("Created %s connection '%s'", connection_class.__name__, name)
        return connection

    @staticmethod
    def _connection_class(type: Union[str, Type[Connection]]) -> Type[Connection]:
        if not isinstance(type, str):
            return type
        if type.lower() in CONNECTORS:
            return CONNECTORS[type.lower()]
        if "." in type or ":" in type:
            return import_string(type)
        raise ConfigFault(
            code="DB_TYPE_UNSUPPORTED",
            message=f"unsupported database type: {type}",
            metadata={"type": type},
        )

    def close(self) -> None:
        """Close every open connection."""
        for connection in self._instances.values():
            connection.close()
        self._instances.clear()

    # ── Default connection shortcuts ─────────────────────────────────

    def table(self, table: Any) -> "BaseQuery":
        return self.connect().table(table)

    def name(self, name: str) -> "BaseQuery":
        return self.connect().name(name)

    def query(self, sql: str, bind: Optional[Any] = None, master: bool = False) -> List[Dict[str, Any]]:
        return self.connect().query(sql, bind or [], master)

    def execute(self, sql: str, bind: Optional[Any] = None) -> int:
        return self.connect().execute(sql, bind or [])

    def transaction(self, callback: Callable[..., Any]) -> Any:
        return self.connect().transaction(callback)

    def __repr__(self) -> str:
        return f"<DbManager default={self.get_config('default', 'mysql')!r} connections={sorted(self._instances)}>"
