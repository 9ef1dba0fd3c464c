"""
Quarry SQL Builder — PostgreSQL dialect.

Double-quoted identifiers, ``->`` / ``->>`` JSON operators,
``LIMIT n OFFSET m`` and ``RANDOM()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import Builder

if TYPE_CHECKING:
    from ..query.base import BaseQuery

__all__ = ["PgsqlBuilder"]


class PgsqlBuilder(Builder):
    identifier_quote = '"'

    insert_sql = "INSERT INTO %TABLE% (%FIELD%) VALUES (%DATA%)%COMMENT%"
    insert_all_sql = "INSERT INTO %TABLE% (%FIELD%) VALUES %DATA%%COMMENT%"
    update_sql = "UPDATE%EXTRA% %TABLE% SET %SET%%WHERE%%COMMENT%"
    delete_sql = "DELETE%EXTRA% FROM %TABLE%%USING%%WHERE%%COMMENT%"

    def parse_json_path(self, field: str, path: str, unquote: bool) -> str:
        parts = [p for p in path.replace("[", ".").replace("]", "").split(".") if p]
        op = "->>" if unquote else "->"
        if len(parts) == 1:
            return f"{field}{op}'{parts[0]}'"
        return f"{field}{op[0]}#{op[1:]}'{{{','.join(parts)}}}'"

    def parse_json_set(self, column: str, path: str, value: str) -> str:
        parts = ",".join(p for p in path.split("->") if p)
        return f"jsonb_set({column}::jsonb, '{{{parts}}}', to_jsonb({value}))"

    def parse_limit(self, query: "BaseQuery", limit: Any) -> str:
        if limit in ("", None):
            return ""
        limit = str(limit)
        if "," in limit:
            offset, length = (part.strip() for part in limit.split(",", 1))
            return f" LIMIT {length} OFFSET {offset}"
        return f" LIMIT {limit}"

    def parse_extra(self, query: "BaseQuery", extra: str) -> str:
        return ""
