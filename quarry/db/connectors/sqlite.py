"""
Quarry Connector — SQLite.

Introspection through ``PRAGMA table_info``. An ``INTEGER PRIMARY KEY``
column is the rowid alias and therefore the auto-increment column.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..backends.sqlite import SQLiteAdapter
from ..connection import Connection

logger = logging.getLogger("quarry.db.connectors.sqlite")

__all__ = ["SqliteConnection"]


class SqliteConnection(Connection):
    adapter_class = SQLiteAdapter
    builder_type = "sqlite"

    def parse_dsn(self, config: Dict[str, Any]) -> str:
        return f"sqlite:{config.get('database') or ':memory:'}"

    def get_fields(self, table: str) -> Dict[str, Dict[str, Any]]:
        table = table.replace("`", "").replace('"', "")
        statement = self.get_statement(f'PRAGMA table_info("{table}")')
        rows = statement.fetch_all()
        statement.close()

        pk_count = sum(1 for row in rows if row["pk"])
        info: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            type = row["type"] or ""
            info[row["name"]] = {
                "name": row["name"],
                "type": type,
                "notnull": bool(row["notnull"]),
                "default": row["dflt_value"],
                "primary": bool(row["pk"]),
                "autoinc": bool(row["pk"]) and pk_count == 1 and "int" in type.lower(),
                "comment": "",
            }
        return info

    def get_tables(self, database: str = "") -> List[str]:
        statement = self.get_statement(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        tables = [row["name"] for row in statement.fetch_all()]
        statement.close()
        return tables

    def supports_savepoint(self) -> bool:
        return True
