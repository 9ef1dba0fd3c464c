"""
Quarry Connectors — one ``Connection`` subclass per database type.

``DbManager`` picks the class from a connection's ``type`` config
through ``CONNECTORS``; a dotted class path is accepted as well.
"""

from .mysql import MysqlConnection
from .pgsql import PgsqlConnection
from .sqlite import SqliteConnection

CONNECTORS = {
    "mysql": MysqlConnection,
    "sqlite": SqliteConnection,
    "pgsql": PgsqlConnection,
    "postgres": PgsqlConnection,
    "postgresql": PgsqlConnection,
}

__all__ = ["MysqlConnection", "SqliteConnection", "PgsqlConnection", "CONNECTORS"]
