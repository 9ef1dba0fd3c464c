"""
Quarry Cache — Query cache key builder.

Deterministic key derivation for cached SELECTs:

- an explicit key is used verbatim
- a primary-key equality query maps to ``{prefix}{database}.{table}|{pk}``
- anything else maps to ``{prefix}sql_{sha256(sql + binds)[:32]}``
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Optional

__all__ = ["QueryKeyBuilder"]


class QueryKeyBuilder:
    """
    Build cache keys for query results.

    Pattern: ``{prefix}{database}.{table}|{pk}`` or
    ``{prefix}sql_{hash}``.

    Example: ``quarry_shop.users|1``
    """

    def __init__(self, prefix: str = "quarry_", hash_length: int = 32):
        """
        Args:
            prefix: Prepended to every generated key
            hash_length: Length of the hex digest suffix (max 64)
        """
        self._prefix = prefix
        self._hash_length = min(hash_length, 64)

    def for_pk(self, database: str, table: str, pk: Any) -> str:
        """Key of a single row fetched by primary key."""
        if database:
            return f"{self._prefix}{database}.{table}|{pk}"
        return f"{self._prefix}{table}|{pk}"

    def for_sql(self, sql: str, bind: Optional[Mapping[str, Any]] = None) -> str:
        """Content-derived key of an arbitrary statement."""
        payload = sql
        if bind:
            values = {k: v[0] if isinstance(v, (tuple, list)) else v for k, v in bind.items()}
            payload += json.dumps(values, sort_keys=True, default=str)
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:self._hash_length]
        return f"{self._prefix}sql_{digest}"

    def for_schema(self, hostname: str, hostport: Any, database: str, table: str) -> str:
        """Key of a persisted table-field introspection result."""
        return f"{hostname}:{hostport}@{database}.{table}"
