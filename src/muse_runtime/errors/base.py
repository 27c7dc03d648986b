"""错误基类：提供分层错误体系和结构化错误上下文。

Base error classes for muse-runtime.

Provides a layered error hierarchy:
- MuseError: Base class for all library errors
- TransportError: Low-level network errors
- RemoteError: Errors reported by the backend over HTTP
- PipelineError: Undecodable stream frames
- ValidationError: Malformed input or caller contract violations
- CredentialError: Missing credential, raised before any network call
- OperationFailedError: Backend-reported failure of a long-running job
- OperationCancelledError: Cooperative cancellation at a suspension point
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from muse_runtime.resilience.cancel import CancelReason


@dataclass
class ErrorContext:
    """Structured error context for diagnostics."""

    details: dict[str, Any] = field(default_factory=dict)
    """Additional details about the error"""

    source: str | None = None
    """Error source (e.g., 'transport', 'remote', 'poller')"""

    hint: str | None = None
    """Actionable hint for resolving the error"""

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(f"[{self.source}]")
        if self.hint:
            parts.append(f"(hint: {self.hint})")
        return " ".join(parts)


class MuseError(Exception):
    """Base class for all muse-runtime errors.

    Attributes:
        message: Human-readable error message
        context: Structured error context
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message."""
        ctx_str = str(self.context)
        if ctx_str:
            return f"{self.message} {ctx_str}"
        return self.message

    def with_hint(self, hint: str) -> MuseError:
        """Add a hint to this error."""
        self.context.hint = hint
        self.args = (self._format_message(),)
        return self


class TransportError(MuseError):
    """Error during HTTP transport.

    Raised when the request never produced an HTTP response:
    connection refused, DNS failure, timeout, TLS errors.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        url: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="transport")
        if url:
            ctx.details["url"] = url
        super().__init__(message, ctx)
        self.url = url
        self.__cause__ = cause


class RemoteError(MuseError):
    """Error returned by the backend.

    Attributes:
        status_code: HTTP status code
        status: Backend status string (e.g. "UNAVAILABLE"), if any
        raw_error: Parsed error body
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        status: str | None = None,
        raw_error: dict[str, Any] | None = None,
    ) -> None:
        ctx = ErrorContext(source="remote")
        ctx.details["status_code"] = status_code
        if status:
            ctx.details["status"] = status
        super().__init__(message, ctx)
        self.status_code = status_code
        self.status = status
        self.raw_error = raw_error or {}

    @classmethod
    def from_response(
        cls,
        status_code: int,
        body: dict[str, Any] | None = None,
    ) -> RemoteError:
        """Create a RemoteError from an HTTP error response.

        The backend envelope is ``{"error": {"code", "message", "status"}}``.
        The status string is folded into the message so that it stays
        visible to message-based classification and to the user.
        """
        error_obj = body.get("error") if body else None
        message = None
        status = None
        if isinstance(error_obj, dict):
            message = error_obj.get("message")
            status = error_obj.get("status")
        elif isinstance(error_obj, str):
            message = error_obj

        text = message or f"HTTP {status_code}"
        if status and status not in text:
            text = f"{status}: {text}"

        return cls(
            text,
            status_code=status_code,
            status=status,
            raw_error=body,
        )


class PipelineError(MuseError):
    """Error while decoding a response stream.

    Raised when a streamed frame cannot be parsed. Never retried: the
    same payload would fail the same way.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        stage: str | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="pipeline")
        if stage:
            ctx.details["stage"] = stage
        super().__init__(message, ctx)
        self.stage = stage


class ValidationError(MuseError):
    """Invalid input or configuration.

    Raised when:
    - A request argument is malformed (e.g. not a base64 data URL)
    - A component is constructed with out-of-range parameters
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        field: str | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="validation")
        if field:
            ctx.details["field"] = field
        super().__init__(message, ctx)
        self.field = field


class CredentialError(MuseError):
    """No API credential could be resolved."""

    def __init__(self, message: str = "Google API Key missing") -> None:
        ctx = ErrorContext(
            source="auth",
            hint="pass api_key= or set MUSE_API_KEY",
        )
        super().__init__(message, ctx)


class OperationFailedError(MuseError):
    """A long-running operation finished with a backend-reported error.

    Attributes:
        operation_name: Handle of the failed operation
        error_payload: The ``error`` field reported by the backend
    """

    def __init__(
        self,
        message: str,
        *,
        operation_name: str | None = None,
        error_payload: dict[str, Any] | None = None,
    ) -> None:
        ctx = ErrorContext(source="poller")
        if operation_name:
            ctx.details["operation"] = operation_name
        super().__init__(message, ctx)
        self.operation_name = operation_name
        self.error_payload = error_payload or {}


class OperationCancelledError(MuseError):
    """The operation was cancelled through a CancelToken."""

    def __init__(self, reason: CancelReason | None = None) -> None:
        label = reason.value if reason is not None else "user_request"
        super().__init__(f"Operation cancelled ({label})", ErrorContext(source="cancel"))
        self.reason = reason
