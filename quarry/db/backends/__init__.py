"""
Quarry DB Backends Package — pluggable driver adapters.

Provides a common adapter interface and implementations for:
- SQLite (default, via sqlite3)
- PostgreSQL (via psycopg2)
- MySQL (via pymysql)
"""

from .base import AdapterCapabilities, DatabaseAdapter, Statement, adapt_named_params
from .mysql import MySQLAdapter
from .postgres import PostgresAdapter
from .sqlite import SQLiteAdapter

__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
    "Statement",
    "adapt_named_params",
    "SQLiteAdapter",
    "PostgresAdapter",
    "MySQLAdapter",
]
