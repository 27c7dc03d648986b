"""
Structured logging for muse-runtime.

Every module logs through a child of the ``muse_runtime`` logger; a single
handler on that package logger formats records as JSON or text, attaches
the current operation scope and redacts Google credentials.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from collections.abc import Iterator

PACKAGE_LOGGER = "muse_runtime"

REDACTED = "***REDACTED***"

_log_context: ContextVar[LogContext | None] = ContextVar("muse_log_context", default=None)


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

    def to_logging_level(self) -> int:
        return logging.getLevelName(self.value)


@dataclass
class LoggingConfig:
    """Package logging settings.

    Attributes:
        level: Minimum level emitted by the package logger
        format: ``"text"`` or ``"json"``
    """

    level: LogLevel = LogLevel.INFO
    format: str = "text"

    @classmethod
    def from_env(cls) -> LoggingConfig:
        """Create configuration from MUSE_LOG_LEVEL and MUSE_LOG_FORMAT."""
        level = os.getenv("MUSE_LOG_LEVEL", "INFO").upper()
        return cls(
            level=LogLevel(level) if level in LogLevel.__members__ else LogLevel.INFO,
            format=os.getenv("MUSE_LOG_FORMAT", "text").lower(),
        )


@dataclass
class LogContext:
    """Scope of the facade operation being logged.

    Attributes:
        request_id: Short id shared by every record of one operation
        operation: Facade operation name (e.g. "generate_image")
        model: Model the operation targets
        extra: Additional context fields
    """

    request_id: str | None = None
    operation: str | None = None
    model: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        scope = {
            "request_id": self.request_id,
            "operation": self.operation,
            "model": self.model,
        }
        result = {key: value for key, value in scope.items() if value}
        result.update(self.extra)
        return result


def get_log_context() -> LogContext:
    """Get the current operation scope (empty outside any operation)."""
    return _log_context.get() or LogContext()


def set_log_context(context: LogContext) -> None:
    _log_context.set(context)


def clear_log_context() -> None:
    _log_context.set(None)


@contextmanager
def operation_context(operation: str, model: str | None = None) -> Iterator[LogContext]:
    """Scope log records to one facade operation, restoring the outer scope on exit."""
    context = LogContext(request_id=uuid.uuid4().hex[:12], operation=operation, model=model)
    token = _log_context.set(context)
    try:
        yield context
    finally:
        _log_context.reset(token)


class SensitiveDataMasker:
    """Redacts Google API credentials from log text and fields."""

    DEFAULT_PATTERNS: ClassVar[list[tuple[str, str]]] = [
        # Bare Google API keys
        (r"AIza[0-9A-Za-z_\-]{20,}", f"AIza{REDACTED}"),
        # Asset URLs carry the key as a query parameter
        (r"([?&]key=)[^&\s\"']+", rf"\1{REDACTED}"),
        # Header and assignment forms
        (r"((?:x-goog-)?api[_-]?key[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", rf"\1{REDACTED}"),
        (r"(Bearer\s+)\S+", rf"\1{REDACTED}"),
    ]

    SENSITIVE_KEYS: ClassVar[tuple[str, ...]] = ("api_key", "apikey", "key", "token", "secret", "authorization")

    def __init__(self, patterns: list[tuple[str, str]] | None = None) -> None:
        self._patterns = [
            (re.compile(pattern, re.IGNORECASE), replacement)
            for pattern, replacement in (patterns or self.DEFAULT_PATTERNS)
        ]

    def mask(self, text: str) -> str:
        for pattern, replacement in self._patterns:
            text = pattern.sub(replacement, text)
        return text

    def _is_sensitive(self, key: str) -> bool:
        normalized = key.lower().replace("-", "_")
        return normalized in self.SENSITIVE_KEYS or normalized.endswith(("_key", "_token"))

    def mask_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Redact sensitive keys and mask string values, recursing into dicts."""
        result: dict[str, Any] = {}
        for key, value in data.items():
            if self._is_sensitive(key):
                result[key] = REDACTED
            elif isinstance(value, str):
                result[key] = self.mask(value)
            elif isinstance(value, dict):
                result[key] = self.mask_dict(value)
            else:
                result[key] = value
        return result


class _MaskingFormatter(logging.Formatter):
    def __init__(self, masker: SensitiveDataMasker | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._masker = masker or SensitiveDataMasker()

    def _fields(self, record: logging.LogRecord) -> dict[str, Any]:
        return self._masker.mask_dict(getattr(record, "extra_fields", {}))


class JsonFormatter(_MaskingFormatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": self._masker.mask(record.getMessage()),
        }
        if scope := get_log_context().to_dict():
            payload["context"] = scope
        payload.update(self._fields(record))
        if record.exc_info:
            payload["exception"] = self._masker.mask(self.formatException(record.exc_info))
        return json.dumps(payload, default=str)


class TextFormatter(_MaskingFormatter):
    """``time | level | logger | message | key=value ...``"""

    def __init__(self, masker: SensitiveDataMasker | None = None) -> None:
        super().__init__(
            masker,
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = self._masker.mask(super().format(record))
        fields = {**get_log_context().to_dict(), **self._fields(record)}
        if fields:
            line += " | " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


class MuseLogger:
    """Logger taking structured keyword fields.

    Example:
        >>> logger = get_logger("muse_runtime.retry")
        >>> logger.warning("Retrying", attempt=2, wait_ms=2150)
    """

    _handler: ClassVar[logging.Handler | None] = None

    @classmethod
    def configure(
        cls,
        level: LogLevel = LogLevel.INFO,
        format: str = "text",
        stream: Any = None,
        masker: SensitiveDataMasker | None = None,
    ) -> None:
        """Install the package handler, replacing any previous one."""
        formatter = JsonFormatter(masker) if format == "json" else TextFormatter(masker)
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(formatter)

        package = logging.getLogger(PACKAGE_LOGGER)
        if cls._handler is not None:
            package.removeHandler(cls._handler)
        package.addHandler(handler)
        package.setLevel(level.to_logging_level())
        package.propagate = False
        cls._handler = handler

    @classmethod
    def configure_from(cls, config: LoggingConfig) -> None:
        cls.configure(level=config.level, format=config.format)

    @classmethod
    def get_logger(cls, name: str) -> MuseLogger:
        if cls._handler is None:
            cls.configure_from(LoggingConfig.from_env())
        if name != PACKAGE_LOGGER and not name.startswith(f"{PACKAGE_LOGGER}."):
            name = f"{PACKAGE_LOGGER}.{name}"
        return cls(logging.getLogger(name))

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, exc_info: bool = False, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            extra = {"extra_fields": fields} if fields else None
            self._logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=exc_info, **fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, exc_info=True, **fields)


def get_logger(name: str) -> MuseLogger:
    """Get a logger under the ``muse_runtime`` hierarchy."""
    return MuseLogger.get_logger(name)
