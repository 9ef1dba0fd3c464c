"""
Quarry Fetch — render terminal calls to SQL instead of executing them.

``query.fetch_sql().select()`` returns the SQL with every bind value
substituted as a literal, for logging and debugging. Never executed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ...faults import DbFault
from ..raw import Raw

if TYPE_CHECKING:
    from .query import Query

__all__ = ["Fetch"]


class Fetch:
    """Mirror of the query terminals returning real SQL strings."""

    def __init__(self, query: "Query"):
        self.query = query
        self.connection = query.get_connection()
        self.builder = self.connection.get_builder()

    def _fetch(self, sql: str) -> str:
        return self.connection.get_real_sql(sql, self.query.get_bind())

    def _aggregate(self, aggregate: str, field: Union[str, Raw]) -> str:
        self.query.parse_options()
        if isinstance(field, Raw):
            expr = self.builder.parse_raw(self.query, field)
        else:
            expr = self.builder.parse_key(self.query, field, True)
        self.query.options["field"] = [Raw(f"{aggregate.upper()}({expr}) AS quarry_{aggregate.lower()}")]
        self.query.options["limit"] = "1"
        return self._fetch(self.builder.select(self.query, True))

    def insert(self, data: Optional[Dict[str, Any]] = None) -> str:
        if data:
            self.query.options["data"] = data
        self.query.parse_options()
        return self._fetch(self.builder.insert(self.query))

    def insert_get_id(self, data: Optional[Dict[str, Any]] = None) -> str:
        return self.insert(data)

    def insert_all(self, dataset: Optional[List[Dict[str, Any]]] = None) -> str:
        self.query.parse_options()
        dataset = dataset or self.query.options.get("data") or []
        return self._fetch(self.builder.insert_all(self.query, dataset, bool(self.query.options.get("replace"))))

    def select_insert(self, fields: List[str], table: str) -> str:
        self.query.parse_options()
        return self._fetch(self.builder.select_insert(self.query, fields, table))

    def update(self, data: Optional[Dict[str, Any]] = None) -> str:
        options = self.query.options
        if data:
            options["data"] = {**(options.get("data") or {}), **data}
        if not options.get("where"):
            self.query.parse_update_data(options["data"])
        if not options.get("where"):
            raise DbFault("miss update condition", config=self.connection.get_config())
        self.query.parse_options()
        return self._fetch(self.builder.update(self.query))

    def delete(self, data: Any = None) -> str:
        if data is not None and data is not True:
            self.query.parse_pk_where(data)
        options = self.query.options
        if data is not True and not options.get("where"):
            raise DbFault("no delete condition", config=self.connection.get_config())
        self.query.parse_options()
        soft_delete = options.get("soft_delete")
        if soft_delete and soft_delete[1]:
            field, condition = soft_delete
            options["soft_delete"] = None
            options["data"] = {field: condition}
            return self._fetch(self.builder.update(self.query))
        return self._fetch(self.builder.delete(self.query))

    def select(self, data: Any = None) -> str:
        if data is not None:
            self.query.parse_pk_where(data)
        self.query.parse_options()
        return self._fetch(self.builder.select(self.query))

    def find(self, data: Any = None) -> str:
        if data is not None:
            self.query.parse_pk_where(data)
        self.query.parse_options()
        return self._fetch(self.builder.select(self.query, True))

    def value(self, field: str) -> str:
        self.query.parse_options()
        self.query.options["field"] = [field]
        return self._fetch(self.builder.select(self.query, True))

    def column(self, field: Union[str, List[str]], key: str = "") -> str:
        self.query.parse_options()
        fields = [f.strip() for f in field.split(",")] if isinstance(field, str) else list(field)
        if key and key not in fields and fields != ["*"]:
            fields.append(key)
        self.query.options["field"] = fields
        return self._fetch(self.builder.select(self.query))

    def count(self, field: str = "*") -> str:
        if self.query.options.get("group"):
            query = self.query.new_query()
            sub_sql = self.query.field(Raw(f"count({field}) AS quarry_count")).build_sql(bind_to=query)
            return Fetch(query.table({sub_sql: "_group_count_"})).count()
        return self._aggregate("COUNT", field)

    def sum(self, field: Union[str, Raw]) -> str:
        return self._aggregate("SUM", field)

    def avg(self, field: Union[str, Raw]) -> str:
        return self._aggregate("AVG", field)

    def max(self, field: Union[str, Raw]) -> str:
        return self._aggregate("MAX", field)

    def min(self, field: Union[str, Raw]) -> str:
        return self._aggregate("MIN", field)

    def __getattr__(self, name: str) -> Any:
        # Non-terminal calls keep chaining on the wrapped query
        attr = getattr(self.query, name)
        if not callable(attr):
            return attr

        def chain(*args: Any, **kwargs: Any) -> Any:
            result = attr(*args, **kwargs)
            return self if result is self.query else result

        return chain
