"""
Telemetry module for muse-runtime.

Provides structured logging with operation-scoped context and credential
masking.
"""

from muse_runtime.telemetry.logger import (
    JsonFormatter,
    LogContext,
    LoggingConfig,
    LogLevel,
    MuseLogger,
    SensitiveDataMasker,
    TextFormatter,
    clear_log_context,
    get_log_context,
    get_logger,
    operation_context,
    set_log_context,
)

__all__ = [
    "JsonFormatter",
    "LogContext",
    "LogLevel",
    "LoggingConfig",
    "MuseLogger",
    "SensitiveDataMasker",
    "TextFormatter",
    "clear_log_context",
    "get_log_context",
    "get_logger",
    "operation_context",
    "set_log_context",
]
