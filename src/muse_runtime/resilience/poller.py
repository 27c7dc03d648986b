"""
Long-running operation poller.

Re-fetches a job's status at a fixed interval until it is done. Each fetch
is retried on its own, so a transient fault on one poll does not end the
wait. A status carrying an ``error`` field is a backend verdict and ends
the wait immediately.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from muse_runtime.errors import OperationFailedError, ValidationError
from muse_runtime.resilience.cancel import cancellable_sleep
from muse_runtime.resilience.retry import RetryConfig, with_retry
from muse_runtime.telemetry import get_logger
from muse_runtime.types import LongRunningOperation

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from muse_runtime.resilience.cancel import CancelToken

logger = get_logger("muse_runtime.poller")


@dataclass
class PollerConfig:
    """Configuration for the poller.

    Attributes:
        interval_ms: Wait between two status fetches, in milliseconds
    """

    interval_ms: float = 5000

    @classmethod
    def from_env(cls) -> PollerConfig:
        """Create configuration from environment variables."""
        return cls(interval_ms=float(os.getenv("MUSE_POLL_INTERVAL_MS", "5000")))


def _check_terminal_error(operation: LongRunningOperation) -> None:
    if operation.error is not None:
        logger.error(
            "Operation reported an error",
            operation_name=operation.name,
            error=operation.error,
        )
        raise OperationFailedError(
            operation.error_message,
            operation_name=operation.name,
            error_payload=operation.error,
        )


async def poll_until_done(
    initial: str | LongRunningOperation,
    fetch_status: Callable[[str], Awaitable[LongRunningOperation]],
    interval_ms: float = 5000,
    *,
    retry_config: RetryConfig | None = None,
    cancel_token: CancelToken | None = None,
) -> LongRunningOperation:
    """Poll a long-running operation until it is done.

    Args:
        initial: A handle to fetch right away, or the operation returned by
            the initiating call (returned as-is when already done)
        fetch_status: Fetches the current status for a handle
        interval_ms: Wait between fetches
        retry_config: Retry budget applied to each individual fetch
        cancel_token: Aborts during a sleep or an in-flight fetch

    Returns:
        The terminal operation state

    Raises:
        OperationFailedError: If a status carries a non-null error
        OperationCancelledError: If the token is cancelled
        The last fetch error, if a single fetch exhausts its retries
    """
    if interval_ms < 0:
        raise ValidationError(f"interval_ms must be >= 0, got {interval_ms}", field="interval_ms")

    config = retry_config or RetryConfig()

    async def fetch(handle: str) -> LongRunningOperation:
        return await with_retry(
            lambda: fetch_status(handle),
            config=config,
            cancel_token=cancel_token,
        )

    if isinstance(initial, LongRunningOperation):
        operation = initial
    else:
        operation = await fetch(initial)
    _check_terminal_error(operation)

    polls = 0
    while not operation.done:
        await cancellable_sleep(interval_ms / 1000.0, cancel_token)
        polls += 1
        logger.debug("Polling operation", operation_name=operation.name, poll=polls)
        operation = await fetch(operation.name)
        _check_terminal_error(operation)

    logger.info("Operation finished", operation_name=operation.name, polls=polls)
    return operation


class OperationPoller:
    """Poller bound to a status fetcher and configuration.

    Example:
        >>> poller = OperationPoller(backend.poll, PollerConfig(interval_ms=5000))
        >>> done = await poller.wait(await backend.start(model, payload))
    """

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[LongRunningOperation]],
        config: PollerConfig | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._fetch_status = fetch_status
        self._config = config or PollerConfig()
        self._retry_config = retry_config

    async def wait(
        self,
        initial: str | LongRunningOperation,
        *,
        cancel_token: CancelToken | None = None,
    ) -> LongRunningOperation:
        """Poll ``initial`` until done."""
        return await poll_until_done(
            initial,
            self._fetch_status,
            self._config.interval_ms,
            retry_config=self._retry_config,
            cancel_token=cancel_token,
        )
