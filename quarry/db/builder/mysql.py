"""
Quarry SQL Builder — MySQL dialect.

Adds ``PARTITION``, ``FORCE INDEX``, ``ON DUPLICATE KEY UPDATE``,
``REGEXP`` / ``FIND IN SET`` operators and native JSON paths. Inserts
use the ``INSERT ... SET`` form.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Sequence

from ..raw import Raw
from .base import Builder

if TYPE_CHECKING:
    from ..query.base import BaseQuery

__all__ = ["MysqlBuilder"]


class MysqlBuilder(Builder):
    """MySQL / MariaDB statement builder."""

    parser = {
        **Builder.parser,
        "parse_regexp": ("REGEXP", "NOT REGEXP"),
        "parse_find_in_set": ("FIND IN SET",),
    }

    select_sql = (
        "SELECT%DISTINCT%%EXTRA% %FIELD% FROM %TABLE%%PARTITION%%FORCE%%JOIN%%WHERE%"
        "%GROUP%%HAVING%%UNION%%ORDER%%LIMIT%%LOCK%%COMMENT%"
    )
    insert_sql = "%INSERT%%EXTRA% INTO %TABLE%%PARTITION% SET %SET%%DUPLICATE%%COMMENT%"
    insert_all_sql = "%INSERT%%EXTRA% INTO %TABLE%%PARTITION% (%FIELD%) VALUES %DATA%%DUPLICATE%%COMMENT%"
    update_sql = "UPDATE%EXTRA% %TABLE%%PARTITION%%JOIN% SET %SET%%WHERE%%ORDER%%LIMIT%%LOCK%%COMMENT%"
    delete_sql = "DELETE%EXTRA% FROM %TABLE%%PARTITION%%USING%%JOIN%%WHERE%%ORDER%%LIMIT%%LOCK%%COMMENT%"

    def parse_json_path(self, field: str, path: str, unquote: bool) -> str:
        prefix = "$" if path.startswith("[") else "$."
        if unquote:
            return f"{field}->>'{prefix}{path}'"
        return f"json_extract({field}, '{prefix}{path}')"

    def parse_regexp(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, Raw):
            value = self.parse_raw(query, value)
        return f"{key} {exp} {value}"

    def parse_find_in_set(self, query, key, exp, value, field, bind_type, logic="AND") -> str:
        if isinstance(value, Raw):
            value = self.parse_raw(query, value)
        return f"FIND_IN_SET({value}, {key})"

    def parse_rand(self, query: "BaseQuery") -> str:
        return "rand()"

    def parse_order_field(self, query: "BaseQuery", key: str, values: Sequence[Any], sort: str) -> str:
        bind = query.get_fields_bind_type()
        sort = f" {sort.upper()}" if sort and sort.upper() in ("ASC", "DESC") else ""
        items = [self.parse_key(query, key, True)]
        items.extend(self.parse_data_bind(query, key, value, bind) for value in values)
        return "field(" + ",".join(items) + ")" + sort

    def parse_partition(self, query: "BaseQuery", partition: Any) -> str:
        if not partition:
            return ""
        if isinstance(partition, str):
            partition = partition.split(",")
        return " PARTITION (" + " , ".join(p.strip() for p in partition) + ")"

    def parse_force(self, query: "BaseQuery", index: Any) -> str:
        if not index:
            return ""
        if isinstance(index, (list, tuple)):
            index = ",".join(index)
        return f" FORCE INDEX ( {index} )"

    def parse_duplicate(self, query: "BaseQuery", duplicate: Any) -> str:
        """
        ``ON DUPLICATE KEY UPDATE``.

        A string or list names columns refreshed from the inserted row,
        a dict maps columns to new values (``Raw`` embedded, others bound).
        """
        if not duplicate:
            return ""
        if isinstance(duplicate, Raw):
            return " ON DUPLICATE KEY UPDATE " + self.parse_raw(query, duplicate)
        if isinstance(duplicate, str):
            duplicate = [d.strip() for d in duplicate.split(",")]

        updates: List[str] = []
        if isinstance(duplicate, dict):
            bind = query.get_fields_bind_type()
            for key, val in duplicate.items():
                column = self.parse_key(query, key, True)
                if isinstance(val, Raw):
                    updates.append(f"{column} = {self.parse_raw(query, val)}")
                else:
                    updates.append(f"{column} = {self.parse_data_bind(query, key, val, bind)}")
        else:
            for key in duplicate:
                column = self.parse_key(query, key, True)
                updates.append(f"{column} = VALUES({column})")
        return " ON DUPLICATE KEY UPDATE " + " , ".join(updates)
