"""
Quarry Faults - Domain-specific fault types.

Provides concrete fault classes for:
- CONFIG faults
- MODEL faults (query building, execution, binding, connections, lookups)
- CACHE faults
"""

from typing import Any, Mapping, Optional

from .core import Fault, FaultDomain, Severity


def redact_config(config: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Copy a connection config without credentials."""
    if not config:
        return {}
    return {k: v for k, v in config.items() if k not in ("username", "password")}


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class ConfigMissingFault(ConfigFault):
    """Required configuration is missing."""

    def __init__(self, key: str, **kwargs):
        super().__init__(
            code="CONFIG_MISSING",
            message=f"Required configuration key '{key}' is missing",
            metadata={"key": key, **kwargs.get("metadata", {})},
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Invalid configuration for '{key}': {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# MODEL Faults (ORM / Database)
# ============================================================================

class ModelFault(Fault):
    """Base class for model and database faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class DbFault(ModelFault):
    """
    Query building or execution error.

    Carries the offending SQL and the connection config with the
    credentials removed.
    """

    def __init__(
        self,
        message: str,
        *,
        config: Optional[Mapping[str, Any]] = None,
        sql: str = "",
        code: str = "DB_ERROR",
        **kwargs,
    ):
        self.sql = sql
        self.config = redact_config(config)
        super().__init__(
            code=code,
            message=message,
            retryable=kwargs.pop("retryable", False),
            metadata={"sql": sql, "config": self.config, **kwargs.get("metadata", {})},
        )


class QueryFault(DbFault):
    """A driver rejected a statement."""

    def __init__(
        self,
        reason: Any,
        *,
        config: Optional[Mapping[str, Any]] = None,
        sql: str = "",
        **kwargs,
    ):
        message = str(reason)
        error = getattr(reason, "args", ()) or ()
        driver_code = error[0] if len(error) > 1 and isinstance(error[0], int) else 0
        sqlstate = getattr(reason, "pgcode", None) or getattr(reason, "sqlstate", None) or ""
        super().__init__(
            message,
            config=config,
            sql=sql,
            code="QUERY_FAILED",
            metadata={
                "sqlstate": sqlstate,
                "driver_code": driver_code,
                "driver_message": message,
                **kwargs.get("metadata", {}),
            },
        )
        self.driver_code = driver_code
        self.sqlstate = sqlstate


class BindParamFault(DbFault):
    """A parameter could not be bound to a statement."""

    def __init__(
        self,
        message: str,
        *,
        config: Optional[Mapping[str, Any]] = None,
        sql: str = "",
        bind: Optional[Mapping[str, Any]] = None,
        **kwargs,
    ):
        self.bind = dict(bind or {})
        super().__init__(
            message,
            config=config,
            sql=sql,
            code="BIND_PARAM_FAILED",
            metadata={"bind": self.bind, **kwargs.get("metadata", {})},
        )


class DatabaseConnectionFault(ModelFault):
    """Database connection failed."""

    def __init__(self, dsn: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({dsn}): {reason}",
            severity=Severity.FATAL,
            retryable=True,
            metadata={"dsn": dsn, "reason": reason, **kwargs.get("metadata", {})},
        )


class DataNotFoundFault(DbFault):
    """A raw table query returned no rows where one was required."""

    def __init__(self, message: str, table: str = "", config: Optional[Mapping[str, Any]] = None):
        self.table = table
        super().__init__(
            message,
            config=config,
            code="DATA_NOT_FOUND",
            metadata={"table": table},
        )


class ModelNotFoundFault(DbFault):
    """A model query returned no rows where one was required."""

    def __init__(self, message: str, model: str = "", config: Optional[Mapping[str, Any]] = None):
        self.model = model
        super().__init__(
            message,
            config=config,
            code="MODEL_NOT_FOUND",
            metadata={"model": model},
        )


class RelationFault(DbFault):
    """A relation was used in a way its kind does not support."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="RELATION_NOT_SUPPORTED", **kwargs)


class MethodNotFoundFault(DbFault):
    """An unknown query or model method was requested."""

    def __init__(self, owner: str, method: str):
        self.owner = owner
        self.method = method
        super().__init__(
            f"method not exist: {owner}->{method}",
            code="METHOD_NOT_EXIST",
            metadata={"owner": owner, "method": method},
        )


# ============================================================================
# CACHE Faults
# ============================================================================

class InvalidArgumentFault(Fault):
    """Invalid argument handed to the cache protocol."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            code="INVALID_ARGUMENT",
            message=message,
            domain=FaultDomain.CACHE,
            severity=Severity.ERROR,
            retryable=False,
            metadata=kwargs.get("metadata", {}),
        )
