"""
Quarry - a query builder and active record ORM

- Query builder: chainable queries rendered to parameterized SQL per dialect
- Connections: transactions, savepoints, read/write splitting, reconnects
- Models: casts, accessors, projection, timestamps, soft delete, events
- Relations: one-to-one, one-to-many, many-to-many, through and polymorphic
  relations with batched (IN) and JOIN eager loading
- Faults: structured error handling with fault domains
"""

__version__ = "0.1.0"

from .cache import CacheStore, MemoryStore, TaggedCache
from .config import ConfigLoader
from .db import BaseQuery, Connection, Cursor, DbManager, Paginator, Query, QueryModifier, Raw
from .faults import (
    ConfigFault,
    DataNotFoundFault,
    DbFault,
    Fault,
    InvalidArgumentFault,
    ModelNotFoundFault,
    QueryFault,
    RelationFault,
)
from .models import Collection, Model, ModelRegistry, Pivot, relationship

__all__ = [
    "__version__",
    # Database
    "DbManager",
    "Connection",
    "BaseQuery",
    "Query",
    "QueryModifier",
    "Cursor",
    "Paginator",
    "Raw",
    # Models
    "Model",
    "ModelRegistry",
    "Collection",
    "Pivot",
    "relationship",
    # Cache / config
    "CacheStore",
    "MemoryStore",
    "TaggedCache",
    "ConfigLoader",
    # Faults
    "Fault",
    "ConfigFault",
    "DbFault",
    "QueryFault",
    "DataNotFoundFault",
    "ModelNotFoundFault",
    "RelationFault",
    "InvalidArgumentFault",
]
