"""Public observability primitives: structured logging with correlation fields."""

from callspec.observability.logging import (
    CORRELATION_FIELDS,
    CheckEventFormatter,
    LoggingConfig,
    LoggingHandle,
    configure_from_mapping,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "CORRELATION_FIELDS",
    "CheckEventFormatter",
    "LoggingConfig",
    "LoggingHandle",
    "configure_from_mapping",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]
