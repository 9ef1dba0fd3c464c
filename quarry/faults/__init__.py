"""
Quarry Faults - structured error taxonomy for the ORM.

Every error raised by quarry is a ``Fault``: it carries a stable code,
a domain, a severity and diagnostic metadata (SQL text, bind values,
redacted connection config).
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)
from .domains import (
    BindParamFault,
    ConfigFault,
    ConfigInvalidFault,
    ConfigMissingFault,
    DatabaseConnectionFault,
    DataNotFoundFault,
    DbFault,
    InvalidArgumentFault,
    MethodNotFoundFault,
    ModelFault,
    ModelNotFoundFault,
    QueryFault,
    RelationFault,
    redact_config,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigFault",
    "ConfigInvalidFault",
    "ConfigMissingFault",
    "ModelFault",
    "DbFault",
    "QueryFault",
    "BindParamFault",
    "DatabaseConnectionFault",
    "DataNotFoundFault",
    "ModelNotFoundFault",
    "RelationFault",
    "MethodNotFoundFault",
    "InvalidArgumentFault",
    "redact_config",
]
