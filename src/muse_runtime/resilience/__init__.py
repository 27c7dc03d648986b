"""
Resilience layer - Retry, admission control, polling and cancellation.

This module provides the request-orchestration primitives:
- RetryPolicy / with_retry: Exponential backoff with jitter over classified errors
- ConcurrencyLimiter: FIFO admission gate bounding in-flight operations
- poll_until_done / OperationPoller: Long-running operation polling
- CancelToken: Cooperative cancellation for retry and poll loops
"""

from muse_runtime.resilience.cancel import (
    CancelReason,
    CancelState,
    CancelToken,
    cancellable_sleep,
    run_cancellable,
)
from muse_runtime.resilience.limiter import ConcurrencyLimiter, LimiterConfig
from muse_runtime.resilience.poller import (
    OperationPoller,
    PollerConfig,
    poll_until_done,
)
from muse_runtime.resilience.retry import (
    RetryConfig,
    RetryPolicy,
    RetryResult,
    RetryState,
    with_retry,
)

__all__ = [
    # Cancellation
    "CancelReason",
    "CancelState",
    "CancelToken",
    # Limiter
    "ConcurrencyLimiter",
    "LimiterConfig",
    # Poller
    "OperationPoller",
    "PollerConfig",
    # Retry
    "RetryConfig",
    "RetryPolicy",
    "RetryResult",
    "RetryState",
    "cancellable_sleep",
    "poll_until_done",
    "run_cancellable",
    "with_retry",
]
