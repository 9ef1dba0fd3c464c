"""
Quarry Aggregates — COUNT / SUM / AVG / MAX / MIN terminals.
"""

from __future__ import annotations

from typing import Any, Union

from ..raw import Raw

__all__ = ["AggregateQuery"]


class AggregateQuery:
    """Aggregate terminals for ``BaseQuery``."""

    def aggregate(self, aggregate: str, field: Union[str, Raw], force: bool = False) -> Any:
        return self.connection.aggregate(self, aggregate, field, force)

    def count(self, field: str = "*") -> int:
        """
        Row count.

        A grouped query is counted by wrapping it as a sub-query so the
        result is the number of groups.
        """
        if self.options.get("group"):
            query = self.new_query()
            sub_sql = self.field(Raw(f"count({field}) AS quarry_count")).build_sql(bind_to=query)
            count = query.table({sub_sql: "_group_count_"}).aggregate("COUNT", "*")
        else:
            count = self.aggregate("COUNT", field)
        return int(count or 0)

    def sum(self, field: Union[str, Raw]) -> float:
        return self.aggregate("SUM", field, True)

    def avg(self, field: Union[str, Raw]) -> float:
        return self.aggregate("AVG", field, True)

    def max(self, field: Union[str, Raw], force: bool = True) -> Any:
        return self.aggregate("MAX", field, force)

    def min(self, field: Union[str, Raw], force: bool = True) -> Any:
        return self.aggregate("MIN", field, force)
