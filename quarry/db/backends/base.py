"""
Quarry DB Backend — Base Adapter Interface.

An adapter is one physical link to a database server. ``Connection``
objects own one adapter per link slot (read/write split, multi-host)
and delegate every driver call to it.

This interface abstracts differences between SQLite, PostgreSQL and MySQL:
- Parameter placeholder style (``:name`` vs ``%(name)s``)
- Transaction and savepoint statements
- Cursor result shape (rows always come back as dicts)
- Driver exception hierarchy
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Type

logger = logging.getLogger("quarry.db.backends")

__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
    "Statement",
    "adapt_named_params",
]

# Savepoint name validation
_SP_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_NAME_CHARS = re.compile(r"[A-Za-z0-9_]")


@dataclass
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_savepoints: bool = True
    supports_xa: bool = False
    supports_multiple_result_sets: bool = False
    supports_sequences: bool = False
    param_style: str = "named"  # named (:name) | pyformat (%(name)s)
    name: str = "base"


def adapt_named_params(sql: str, style: str) -> str:
    """
    Rewrite ``:name`` placeholders to ``style``.

    String-literal and quoted-identifier safe: placeholders inside
    ``'...'``, ``"..."`` or backticks are left alone, as is a ``::``
    cast. For ``pyformat`` every literal ``%`` is doubled.
    """
    if style == "named":
        return sql

    result: List[str] = []
    quote: Optional[str] = None
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if quote is not None:
            if ch == quote:
                if i + 1 < n and sql[i + 1] == quote:
                    result.append(ch * 2)
                    i += 2
                    continue
                quote = None
            elif ch == "\\" and quote == "'" and i + 1 < n:
                result.append(sql[i:i + 2])
                i += 2
                continue
            result.append("%%" if ch == "%" else ch)
        elif ch in ("'", '"', "`"):
            quote = ch
            result.append(ch)
        elif ch == "%":
            result.append("%%")
        elif ch == ":" and i + 1 < n and sql[i + 1] == ":":
            result.append("::")
            i += 2
            continue
        elif ch == ":" and i + 1 < n and _NAME_CHARS.match(sql[i + 1]):
            j = i + 1
            while j < n and _NAME_CHARS.match(sql[j]):
                j += 1
            result.append(f"%({sql[i + 1:j]})s")
            i = j
            continue
        else:
            result.append(ch)
        i += 1
    return "".join(result)


class Statement:
    """
    Executed statement handle.

    Wraps a DB-API cursor and always yields rows as dicts.
    """

    __slots__ = ("_cursor", "_columns", "_closed", "_error")

    def __init__(self, cursor: Any, error: Type[BaseException] = Exception):
        self._cursor = cursor
        self._columns: Optional[List[str]] = None
        self._closed = False
        self._error = error

    @property
    def cursor(self) -> Any:
        return self._cursor

    @property
    def row_count(self) -> int:
        count = getattr(self._cursor, "rowcount", -1)
        return count if count is not None and count >= 0 else 0

    @property
    def columns(self) -> List[str]:
        if self._columns is None:
            description = self._cursor.description or ()
            self._columns = [d[0] for d in description]
        return self._columns

    def _to_dict(self, row: Any) -> Dict[str, Any]:
        if isinstance(row, dict):
            return dict(row)
        if hasattr(row, "keys"):
            return {k: row[k] for k in row.keys()}
        return dict(zip(self.columns, row))

    def fetch_all(self) -> List[Dict[str, Any]]:
        if self._cursor.description is None:
            return []
        return [self._to_dict(row) for row in self._cursor.fetchall()]

    def fetch_one(self) -> Optional[Dict[str, Any]]:
        if self._cursor.description is None:
            return None
        row = self._cursor.fetchone()
        return None if row is None else self._to_dict(row)

    def fetch_column(self, index: int = 0) -> Any:
        row = self.fetch_one()
        if row is None:
            return None
        values = list(row.values())
        return values[index] if index < len(values) else None

    def next_set(self) -> bool:
        """Advance to the next result set where the driver supports it."""
        nextset = getattr(self._cursor, "nextset", None)
        if nextset is None:
            return False
        try:
            more = nextset()
        except NotImplementedError:
            return False
        self._columns = None
        return bool(more)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        if self._cursor.description is None:
            return
        while True:
            row = self._cursor.fetchone()
            if row is None:
                break
            yield self._to_dict(row)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            close = getattr(self._cursor, "close", None)
            if close is not None:
                try:
                    close()
                except self._error as exc:
                    logger.debug("Error closing cursor: %s", exc)


class DatabaseAdapter(ABC):
    """
    Abstract database adapter interface.

    One instance holds one driver connection. ``Error`` is the driver's
    base exception class; connections catch it to classify failures.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()
    Error: Type[BaseException] = Exception

    def __init__(self) -> None:
        self._connection: Any = None

    @abstractmethod
    def connect(self, params: Mapping[str, Any]) -> None:
        """Open the driver connection."""
        ...

    def close(self) -> None:
        """Close the driver connection."""
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._connection = None
                logger.debug("%s link closed", self.dialect)

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Statement:
        """Execute ``sql`` (``:name`` placeholders) and return its statement."""
        if self._connection is None:
            raise self.Error("Not connected")
        cursor = self._new_cursor()
        if params:
            cursor.execute(self.adapt_sql(sql), dict(params))
        else:
            cursor.execute(sql)
        return Statement(cursor, self.Error)

    def call(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Statement:
        """Execute a stored procedure call."""
        return self.execute(sql, params)

    def _new_cursor(self) -> Any:
        return self._connection.cursor()

    def last_insert_id(self, statement: Optional[Statement] = None, sequence: Optional[str] = None) -> Any:
        """Extract the last inserted ID."""
        if statement is not None:
            return getattr(statement.cursor, "lastrowid", None)
        return None

    # ── Transaction management ───────────────────────────────────────

    def begin(self) -> None:
        self.execute("BEGIN")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")

    def savepoint(self, name: str) -> None:
        self.execute(f"SAVEPOINT {self._savepoint_name(name)}")

    def release_savepoint(self, name: str) -> None:
        self.execute(f"RELEASE SAVEPOINT {self._savepoint_name(name)}")

    def rollback_to_savepoint(self, name: str) -> None:
        self.execute(f"ROLLBACK TO SAVEPOINT {self._savepoint_name(name)}")

    @staticmethod
    def _savepoint_name(name: str) -> str:
        if not _SP_NAME_RE.match(name):
            raise ValueError(f"Invalid savepoint name: {name!r}")
        return name

    # ── SQL adaptation ───────────────────────────────────────────────

    def adapt_sql(self, sql: str) -> str:
        """Adapt ``:name`` placeholders to the backend's param style."""
        return adapt_named_params(sql, self.capabilities.param_style)

    def error_info(self, exc: BaseException) -> Tuple[str, int, str]:
        """``(sqlstate, driver_code, message)`` of a driver exception."""
        args = getattr(exc, "args", ()) or ()
        code = args[0] if len(args) > 1 and isinstance(args[0], int) else 0
        sqlstate = getattr(exc, "pgcode", None) or getattr(exc, "sqlstate", None) or ""
        return sqlstate, code, str(exc)

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def raw_connection(self) -> Any:
        """Direct access to the driver connection (advanced use)."""
        return self._connection

    @property
    def dialect(self) -> str:
        return self.capabilities.name
