"""
Quarry Connector — MySQL / MariaDB.

Introspection through ``SHOW FULL COLUMNS``; savepoints and XA
(two-phase) transactions are supported.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from ...faults import DbFault
from ..backends.mysql import MySQLAdapter
from ..connection import Connection

logger = logging.getLogger("quarry.db.connectors.mysql")

__all__ = ["MysqlConnection"]

_XID_RE = re.compile(r"^[\w.\-]+$")


class MysqlConnection(Connection):
    adapter_class = MySQLAdapter
    builder_type = "mysql"

    def parse_dsn(self, config: Dict[str, Any]) -> str:
        if config.get("dsn"):
            return str(config["dsn"])
        if config.get("socket"):
            dsn = f"mysql:unix_socket={config['socket']}"
        elif config.get("hostport"):
            dsn = f"mysql:host={config.get('hostname')};port={config['hostport']}"
        else:
            dsn = f"mysql:host={config.get('hostname')}"
        dsn += f";dbname={config.get('database') or ''}"
        if config.get("charset"):
            dsn += f";charset={config['charset']}"
        return dsn

    def get_fields(self, table: str) -> Dict[str, Dict[str, Any]]:
        if "`" not in table:
            table = "`" + table.replace(".", "`.`") + "`"
        statement = self.get_statement(f"SHOW FULL COLUMNS FROM {table}")
        rows = statement.fetch_all()
        statement.close()

        info: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            row = {str(key).lower(): value for key, value in row.items()}
            info[row["field"]] = {
                "name": row["field"],
                "type": row["type"],
                "notnull": row["null"] == "NO",
                "default": row["default"],
                "primary": str(row["key"]).lower() == "pri",
                "autoinc": str(row["extra"]).lower() == "auto_increment",
                "comment": row.get("comment") or "",
            }
        return info

    def get_tables(self, database: str = "") -> List[str]:
        sql = f"SHOW TABLES FROM `{database}`" if database else "SHOW TABLES"
        statement = self.get_statement(sql)
        tables = [next(iter(row.values())) for row in statement.fetch_all()]
        statement.close()
        return tables

    def supports_savepoint(self) -> bool:
        return True

    # ── XA ───────────────────────────────────────────────────────────

    def _xa(self, *statements: str) -> None:
        self.init_connect(True)
        for sql in statements:
            self.get_statement(sql, master=True)

    @staticmethod
    def _xid(xid: str) -> str:
        if not _XID_RE.match(xid):
            raise DbFault(f"invalid xa transaction id: {xid!r}")
        return f"'{xid}'"

    def start_trans_xa(self, xid: str) -> None:
        self._xa(f"XA START {self._xid(xid)}")

    def prepare_xa(self, xid: str) -> None:
        xid = self._xid(xid)
        self._xa(f"XA END {xid}", f"XA PREPARE {xid}")

    def commit_xa(self, xid: str) -> None:
        self._xa(f"XA COMMIT {self._xid(xid)}")

    def rollback_xa(self, xid: str) -> None:
        self._xa(f"XA ROLLBACK {self._xid(xid)}")
