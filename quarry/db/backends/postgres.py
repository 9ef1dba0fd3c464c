"""
Quarry DB Backend — PostgreSQL adapter via psycopg2.

Requires psycopg2:
    pip install quarry[postgres]
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .base import AdapterCapabilities, DatabaseAdapter, Statement

logger = logging.getLogger("quarry.db.backends.postgres")

__all__ = ["PostgresAdapter"]

try:
    import psycopg2
    import psycopg2.extras
    _HAS_PSYCOPG2 = True
except ImportError:
    psycopg2 = None  # type: ignore
    _HAS_PSYCOPG2 = False


class PostgresAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter using psycopg2.

    Features:
    - ``%(name)s`` placeholders (pyformat), ``::`` casts preserved
    - RealDictCursor rows
    - ``currval()`` based last insert id for sequences
    """

    capabilities = AdapterCapabilities(
        supports_savepoints=True,
        supports_xa=False,
        supports_multiple_result_sets=False,
        supports_sequences=True,
        param_style="pyformat",
        name="pgsql",
    )
    Error = psycopg2.Error if _HAS_PSYCOPG2 else Exception

    def connect(self, params: Mapping[str, Any]) -> None:
        if self._connection is not None:
            return
        if not _HAS_PSYCOPG2:
            raise ImportError(
                "psycopg2 is required for PostgreSQL support.\n"
                "Install: pip install psycopg2-binary"
            )
        kwargs = {
            "host": params.get("hostname") or "127.0.0.1",
            "port": int(params.get("hostport") or 5432),
            "user": params.get("username") or None,
            "password": params.get("password") or None,
            "dbname": params.get("database") or None,
        }
        kwargs.update(params.get("params") or {})
        if params.get("dsn"):
            self._connection = psycopg2.connect(params["dsn"])
        else:
            self._connection = psycopg2.connect(**kwargs)
        self._connection.autocommit = True
        if params.get("charset"):
            self._connection.set_client_encoding(str(params["charset"]).replace("utf8mb4", "utf8"))
        logger.info("PostgreSQL connected: %s:%s", kwargs["host"], kwargs["port"])

    def _new_cursor(self) -> Any:
        return self._connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    def last_insert_id(self, statement: Optional[Statement] = None, sequence: Optional[str] = None) -> Any:
        cursor = self._connection.cursor()
        try:
            if sequence:
                cursor.execute("SELECT currval(%s)", (sequence,))
            else:
                cursor.execute("SELECT lastval()")
            row = cursor.fetchone()
            return row[0] if row else None
        finally:
            cursor.close()

    @property
    def dialect(self) -> str:
        return "pgsql"
