"""
Quarry Database Layer

- manager: ``DbManager``, the application-owned database context
- connection: ``Connection``, execution, transactions and introspection
- connectors: per database type connections (sqlite, mysql, pgsql)
- backends: DB-API adapters the connections drive
- builder: per dialect SQL builders
- query: the chainable query
- raw / binder: raw SQL fragments and parameter binding
"""

from .binder import ParamsBinder
from .connection import Connection
from .connectors import CONNECTORS, MysqlConnection, PgsqlConnection, SqliteConnection
from .manager import DB_EVENTS, DbManager
from .query import BaseQuery, Cursor, Paginator, Query, QueryModifier
from .raw import Raw

__all__ = [
    "DbManager",
    "DB_EVENTS",
    "Connection",
    "CONNECTORS",
    "MysqlConnection",
    "PgsqlConnection",
    "SqliteConnection",
    "BaseQuery",
    "Query",
    "Cursor",
    "Paginator",
    "QueryModifier",
    "ParamsBinder",
    "Raw",
]
