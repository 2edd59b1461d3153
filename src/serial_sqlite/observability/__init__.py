"""Observability: structured JSON-lines logging and call correlation."""

from serial_sqlite.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    correlation_scope,
    flush_logging,
    get_correlation_context,
    operation_scope,
    redact_sql_literals,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "flush_logging",
    "get_correlation_context",
    "operation_scope",
    "redact_sql_literals",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
