"""错误分类模块：按优先级规则表将任意异常映射到瞬时或致命类别。

Error classification for backend failures.

Maps any raised exception onto a small taxonomy that drives retry
decisions. Classification is a prioritized rule table: exact status codes
first, then backend message signatures, then network signatures, then
transport exception types. The first matching rule wins.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum

import httpx

from muse_runtime.errors.base import OperationCancelledError, TransportError


class ErrorClass(str, Enum):
    """Failure taxonomy."""

    OVERLOADED = "overloaded"
    """Backend temporarily unavailable (503, UNAVAILABLE)."""

    RATE_LIMITED = "rate_limited"
    """Throttled or out of quota (429, RESOURCE_EXHAUSTED)."""

    NETWORK_FAILURE = "network_failure"
    """The request never reached the backend or the connection dropped."""

    FATAL = "fatal"
    """Anything retrying cannot fix."""

    CANCELLED = "cancelled"
    """Aborted by the caller through a cancellation token."""


_TRANSIENT_CLASSES: frozenset[ErrorClass] = frozenset(
    {
        ErrorClass.OVERLOADED,
        ErrorClass.RATE_LIMITED,
        ErrorClass.NETWORK_FAILURE,
    }
)

STATUS_RULES: dict[int, ErrorClass] = {
    503: ErrorClass.OVERLOADED,
    429: ErrorClass.RATE_LIMITED,
}

# Case-sensitive, checked in order
BACKEND_MESSAGE_RULES: tuple[tuple[str, ErrorClass], ...] = (
    ("503", ErrorClass.OVERLOADED),
    ("overloaded", ErrorClass.OVERLOADED),
    ("UNAVAILABLE", ErrorClass.OVERLOADED),
    ("429", ErrorClass.RATE_LIMITED),
    ("RESOURCE_EXHAUSTED", ErrorClass.RATE_LIMITED),
    ("quota", ErrorClass.RATE_LIMITED),
)

NETWORK_MESSAGE_RULES: tuple[tuple[str, ErrorClass], ...] = (
    ("Failed to fetch", ErrorClass.NETWORK_FAILURE),
    ("ERR_CONNECTION", ErrorClass.NETWORK_FAILURE),
)

NETWORK_ERROR_TYPES: tuple[type[BaseException], ...] = (
    TransportError,
    httpx.TransportError,
    ConnectionError,
)

_STATUS_ATTRIBUTES = ("status_code", "status", "http_status_code")


def _status_of(error: BaseException) -> int | None:
    for attr in _STATUS_ATTRIBUTES:
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _message_of(error: BaseException) -> str:
    message = ""
    with contextlib.suppress(Exception):
        message = str(error)
    return message


def classify(error: BaseException) -> ErrorClass:
    """Classify an exception.

    Pure and total: the same error always yields the same class and this
    function never raises.

    Args:
        error: Any exception raised by an operation

    Returns:
        The matching ErrorClass, FATAL when nothing matches
    """
    if isinstance(error, (OperationCancelledError, asyncio.CancelledError)):
        return ErrorClass.CANCELLED

    status = _status_of(error)
    if status in STATUS_RULES:
        return STATUS_RULES[status]

    message = _message_of(error)
    for needle, error_class in BACKEND_MESSAGE_RULES:
        if needle in message:
            return error_class

    for needle, error_class in NETWORK_MESSAGE_RULES:
        if needle in message:
            return error_class

    if isinstance(error, NETWORK_ERROR_TYPES):
        return ErrorClass.NETWORK_FAILURE

    return ErrorClass.FATAL


def is_transient(error_class: ErrorClass) -> bool:
    """Check if an error class is eligible for retry."""
    return error_class in _TRANSIENT_CLASSES


def is_retryable(error: BaseException) -> bool:
    """Classify an exception and report whether it may be retried."""
    return is_transient(classify(error))
