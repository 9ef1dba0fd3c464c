"""
Quarry SQL Builder — SQLite dialect.

SQLite accepts backtick quoted identifiers, so only the clauses it
lacks are dropped: row locks, ordered/limited writes and joins in
UPDATE/DELETE. ``REPLACE`` inserts map to ``INSERT OR REPLACE``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import Builder

if TYPE_CHECKING:
    from ..query.base import BaseQuery

__all__ = ["SqliteBuilder"]


class SqliteBuilder(Builder):
    update_sql = "UPDATE%EXTRA% %TABLE% SET %SET%%WHERE%%COMMENT%"
    delete_sql = "DELETE%EXTRA% FROM %TABLE%%WHERE%%COMMENT%"

    def parse_lock(self, query: "BaseQuery", lock: Any) -> str:
        return ""

    def parse_extra(self, query: "BaseQuery", extra: str) -> str:
        extra = super().parse_extra(query, extra)
        return f" OR{extra}" if extra.strip().upper() in ("IGNORE", "REPLACE") else extra

    def insert(self, query: "BaseQuery") -> str:
        return self._or_replace(super().insert(query))

    def insert_all(self, query, dataset, replace: bool = False) -> str:
        return self._or_replace(super().insert_all(query, dataset, replace))

    @staticmethod
    def _or_replace(sql: str) -> str:
        return "INSERT OR REPLACE" + sql[len("REPLACE"):] if sql.startswith("REPLACE ") else sql
