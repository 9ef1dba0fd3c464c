"""
Quarry SQL Builders.

One builder per dialect; ``Connection.get_builder()`` picks the class
named by the connection's ``builder`` config or its dialect default.
"""

from .base import Builder, is_scalar
from .mysql import MysqlBuilder
from .pgsql import PgsqlBuilder
from .sqlite import SqliteBuilder

BUILDERS = {
    "mysql": MysqlBuilder,
    "sqlite": SqliteBuilder,
    "pgsql": PgsqlBuilder,
    "postgres": PgsqlBuilder,
    "postgresql": PgsqlBuilder,
}

__all__ = ["Builder", "MysqlBuilder", "SqliteBuilder", "PgsqlBuilder", "BUILDERS", "is_scalar"]
