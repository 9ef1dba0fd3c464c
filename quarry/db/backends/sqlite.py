"""
Quarry DB Backend — SQLite adapter via the standard library ``sqlite3``.

This is the default backend. The driver runs in autocommit mode
(``isolation_level=None``) so transactions and savepoints are issued
explicitly by the owning connection.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping, Optional

from .base import AdapterCapabilities, DatabaseAdapter, Statement

logger = logging.getLogger("quarry.db.backends.sqlite")

__all__ = ["SQLiteAdapter"]


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using ``sqlite3``.

    Features:
    - Native ``:name`` placeholders
    - Foreign key enforcement
    - Savepoint-based nested transactions
    - Rows returned as dicts through ``sqlite3.Row``
    """

    capabilities = AdapterCapabilities(
        supports_savepoints=True,
        supports_xa=False,
        supports_multiple_result_sets=False,
        param_style="named",
        name="sqlite",
    )
    Error = sqlite3.Error

    def connect(self, params: Mapping[str, Any]) -> None:
        if self._connection is not None:
            return
        options = dict(params.get("params") or {})
        database = params.get("database") or ":memory:"
        self._connection = sqlite3.connect(
            database,
            isolation_level=None,
            check_same_thread=options.pop("check_same_thread", False),
            **options,
        )
        self._connection.row_factory = sqlite3.Row
        if params.get("foreign_keys", True):
            self._connection.execute("PRAGMA foreign_keys=ON")
        logger.info("SQLite connected: %s", database)

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Statement:
        if params:
            params = {key: _adapt_value(value) for key, value in params.items()}
        return super().execute(sql, params)

    def last_insert_id(self, statement: Optional[Statement] = None, sequence: Optional[str] = None) -> Any:
        if statement is not None and statement.cursor.lastrowid:
            return statement.cursor.lastrowid
        row = self._connection.execute("SELECT last_insert_rowid()").fetchone()
        return row[0] if row else None

    @property
    def dialect(self) -> str:
        return "sqlite"


def _adapt_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value
