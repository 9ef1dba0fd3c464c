"""
Quarry Connector — PostgreSQL.

Introspection through the ``pg_attribute`` catalog; a column whose
default is ``nextval(...)`` or that is an identity column counts as
auto-increment.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..backends.postgres import PostgresAdapter
from ..binder import PARAM_STR
from ..connection import Connection

logger = logging.getLogger("quarry.db.connectors.pgsql")

__all__ = ["PgsqlConnection"]

_FIELDS_SQL = """
SELECT a.attname AS name,
       format_type(a.atttypid, a.atttypmod) AS type,
       a.attnotnull AS notnull,
       pg_get_expr(d.adbin, d.adrelid) AS dflt,
       COALESCE(i.indisprimary, false) AS is_primary,
       a.attidentity AS identity,
       col_description(a.attrelid, a.attnum) AS comment
FROM pg_attribute a
LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
LEFT JOIN pg_index i ON i.indrelid = a.attrelid AND a.attnum = ANY(i.indkey) AND i.indisprimary
WHERE a.attrelid = CAST(:table AS regclass) AND a.attnum > 0 AND NOT a.attisdropped
ORDER BY a.attnum
"""


class PgsqlConnection(Connection):
    adapter_class = PostgresAdapter
    builder_type = "pgsql"

    def parse_dsn(self, config: Dict[str, Any]) -> str:
        if config.get("dsn"):
            return str(config["dsn"])
        dsn = f"pgsql:dbname={config.get('database') or ''};host={config.get('hostname')}"
        if config.get("hostport"):
            dsn += f";port={config['hostport']}"
        return dsn

    def get_fields(self, table: str) -> Dict[str, Dict[str, Any]]:
        table = table.replace('"', "")
        statement = self.get_statement(_FIELDS_SQL.strip(), {"table": (table, PARAM_STR)})
        rows = statement.fetch_all()
        statement.close()

        info: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            default = row["dflt"]
            info[row["name"]] = {
                "name": row["name"],
                "type": row["type"],
                "notnull": bool(row["notnull"]),
                "default": default,
                "primary": bool(row["is_primary"]),
                "autoinc": bool(row["identity"]) or str(default or "").startswith("nextval("),
                "comment": row["comment"] or "",
            }
        return info

    def get_tables(self, database: str = "") -> List[str]:
        statement = self.get_statement(
            "SELECT tablename FROM pg_tables WHERE schemaname = current_schema() ORDER BY tablename"
        )
        tables = [row["tablename"] for row in statement.fetch_all()]
        statement.close()
        return tables

    def supports_savepoint(self) -> bool:
        return True
