"""muse-runtime：面向突发型生成式 AI 后端的客户端请求编排层。

muse-runtime: Client-side request orchestration for a bursty generative AI backend.

Every backend call is admitted by a FIFO concurrency limiter, retried with
exponential backoff when the failure is transient, and, for long-running
jobs, polled until done. Streamed reasoning is exposed as incremental
section snapshots.
"""

from __future__ import annotations

from muse_runtime.client import (
    ImageResult,
    ModelConfig,
    MuseClient,
    RefinedPrompt,
    SocialCopy,
    VideoResult,
)
from muse_runtime.errors import (
    CredentialError,
    ErrorClass,
    MuseError,
    OperationCancelledError,
    OperationFailedError,
    RemoteError,
    TransportError,
    ValidationError,
    classify,
)
from muse_runtime.pipeline import TagParser, parse_stream
from muse_runtime.resilience import (
    CancelToken,
    ConcurrencyLimiter,
    RetryConfig,
    poll_until_done,
    with_retry,
)
from muse_runtime.types import LongRunningOperation, ParserEvent

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "CancelToken",
    "ConcurrencyLimiter",
    # Errors
    "CredentialError",
    "ErrorClass",
    # Client
    "ImageResult",
    # Types
    "LongRunningOperation",
    "ModelConfig",
    "MuseClient",
    "MuseError",
    "OperationCancelledError",
    "OperationFailedError",
    "ParserEvent",
    "RefinedPrompt",
    "RemoteError",
    "RetryConfig",
    "SocialCopy",
    "TagParser",
    "TransportError",
    "ValidationError",
    "VideoResult",
    "classify",
    "parse_stream",
    "poll_until_done",
    # Version
    "__version__",
    "with_retry",
]
