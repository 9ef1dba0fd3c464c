"""
Quarry DB Backend — MySQL adapter via pymysql.

Requires pymysql:
    pip install quarry[mysql]
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .base import AdapterCapabilities, DatabaseAdapter, Statement

logger = logging.getLogger("quarry.db.backends.mysql")

__all__ = ["MySQLAdapter"]

try:
    import pymysql
    import pymysql.cursors
    _HAS_PYMYSQL = True
except ImportError:
    pymysql = None  # type: ignore
    _HAS_PYMYSQL = False


class MySQLAdapter(DatabaseAdapter):
    """
    MySQL / MariaDB adapter.

    Features:
    - ``%(name)s`` placeholders (pyformat)
    - Dict cursors
    - Multiple result sets for stored procedures
    - XA transactions
    """

    capabilities = AdapterCapabilities(
        supports_savepoints=True,
        supports_xa=True,
        supports_multiple_result_sets=True,
        param_style="pyformat",
        name="mysql",
    )
    Error = pymysql.err.Error if _HAS_PYMYSQL else Exception

    def connect(self, params: Mapping[str, Any]) -> None:
        if self._connection is not None:
            return
        if not _HAS_PYMYSQL:
            raise ImportError(
                "pymysql is required for MySQL support.\n"
                "Install: pip install pymysql"
            )
        kwargs = {
            "host": params.get("hostname") or "127.0.0.1",
            "port": int(params.get("hostport") or 3306),
            "user": params.get("username") or None,
            "password": params.get("password") or "",
            "database": params.get("database") or None,
            "charset": params.get("charset") or "utf8mb4",
            "autocommit": True,
            "cursorclass": pymysql.cursors.DictCursor,
        }
        if params.get("socket"):
            kwargs["unix_socket"] = params["socket"]
        kwargs.update(params.get("params") or {})
        self._connection = pymysql.connect(**kwargs)
        logger.info("MySQL connected: %s:%s", kwargs["host"], kwargs["port"])

    def last_insert_id(self, statement: Optional[Statement] = None, sequence: Optional[str] = None) -> Any:
        if statement is not None and statement.cursor.lastrowid:
            return statement.cursor.lastrowid
        return self._connection.insert_id()

    def begin(self) -> None:
        self._connection.begin()

    def commit(self) -> None:
        self._connection.commit()

    def rollback(self) -> None:
        self._connection.rollback()

    @property
    def dialect(self) -> str:
        return "mysql"
