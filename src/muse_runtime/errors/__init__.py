"""错误体系：结构化错误类型与瞬时/致命分类。

Error hierarchy for muse-runtime.

Provides structured error types and the transient/fatal classifier used by
the retry executor.
"""

from muse_runtime.errors.base import (
    CredentialError,
    ErrorContext,
    MuseError,
    OperationCancelledError,
    OperationFailedError,
    PipelineError,
    RemoteError,
    TransportError,
    ValidationError,
)
from muse_runtime.errors.classification import (
    ErrorClass,
    classify,
    is_retryable,
    is_transient,
)

__all__ = [
    "CredentialError",
    # Classification
    "ErrorClass",
    "ErrorContext",
    # Base errors
    "MuseError",
    "OperationCancelledError",
    "OperationFailedError",
    "PipelineError",
    "RemoteError",
    "TransportError",
    "ValidationError",
    "classify",
    "is_retryable",
    "is_transient",
]
