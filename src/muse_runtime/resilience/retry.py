"""
Retry executor with exponential backoff and jitter.

Attempts are strictly sequential. Each failure is classified; transient
failures are retried after ``delay + jitter`` (jitter uniform in
``[0, jitter_ratio * delay)``) and the delay doubles every time. Fatal
failures and exhausted budgets surface the original exception unchanged.
"""

from __future__ import annotations

import contextlib
import os
import random
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, TypeVar

from muse_runtime.errors import (
    ErrorClass,
    OperationCancelledError,
    ValidationError,
    classify,
    is_transient,
)
from muse_runtime.resilience.cancel import cancellable_sleep, run_cancellable
from muse_runtime.telemetry import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from muse_runtime.resilience.cancel import CancelToken

T = TypeVar("T")

logger = get_logger("muse_runtime.retry")


@dataclass
class RetryConfig:
    """Configuration for the retry executor.

    Attributes:
        max_retries: Retries after the first attempt (0 = attempt once)
        initial_delay_ms: Delay before the first retry, in milliseconds
        jitter_ratio: Upper bound of the random addition, as a fraction of the delay
    """

    max_retries: int = 3
    initial_delay_ms: float = 1000
    jitter_ratio: float = 0.3

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValidationError(
                f"max_retries must be >= 0, got {self.max_retries}", field="max_retries"
            )
        if self.initial_delay_ms <= 0:
            raise ValidationError(
                f"initial_delay_ms must be > 0, got {self.initial_delay_ms}",
                field="initial_delay_ms",
            )
        if not 0 <= self.jitter_ratio < 1:
            raise ValidationError(
                f"jitter_ratio must be in [0, 1), got {self.jitter_ratio}",
                field="jitter_ratio",
            )

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Create configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("MUSE_RETRY_MAX", "3")),
            initial_delay_ms=float(os.getenv("MUSE_RETRY_INITIAL_DELAY_MS", "1000")),
        )

    @classmethod
    def no_retry(cls) -> RetryConfig:
        """Create a config that disables retries."""
        return cls(max_retries=0)


@dataclass(frozen=True)
class RetryState:
    """Budget left for one retry invocation.

    Attributes:
        remaining_attempts: Retries still allowed
        current_delay_ms: Base delay before the next retry
    """

    remaining_attempts: int
    current_delay_ms: float

    @property
    def exhausted(self) -> bool:
        return self.remaining_attempts == 0

    def advance(self) -> RetryState:
        """State after one retry: one fewer attempt, doubled delay."""
        if self.exhausted:
            raise ValidationError("Retry budget already exhausted")
        return replace(
            self,
            remaining_attempts=self.remaining_attempts - 1,
            current_delay_ms=self.current_delay_ms * 2,
        )


@dataclass
class RetryResult:
    """Result of a retry invocation.

    Attributes:
        success: Whether the operation succeeded
        value: The result value (if success)
        error: The last error (if failed)
        error_class: Classification of the last error (if failed)
        attempts: Number of attempts made
        total_delay_ms: Total time spent waiting between attempts
    """

    success: bool
    value: Any = None
    error: Exception | None = None
    error_class: ErrorClass | None = None
    attempts: int = 0
    total_delay_ms: float = 0.0


class RetryPolicy:
    """Retry policy with exponential backoff and jitter.

    Example:
        >>> policy = RetryPolicy(RetryConfig(max_retries=3, initial_delay_ms=1000))
        >>> result = await policy.execute(call_backend)
        >>> if not result.success:
        ...     print(f"Failed after {result.attempts} attempts: {result.error}")
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def initial_state(self) -> RetryState:
        return RetryState(
            remaining_attempts=self._config.max_retries,
            current_delay_ms=self._config.initial_delay_ms,
        )

    def calculate_delay_ms(self, state: RetryState) -> float:
        """Base delay of ``state`` plus jitter in ``[0, jitter_ratio * delay)``."""
        jitter = random.random() * self._config.jitter_ratio * state.current_delay_ms
        return state.current_delay_ms + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        cancel_token: CancelToken | None = None,
        on_retry: Callable[[int, Exception, float], Any] | None = None,
    ) -> RetryResult:
        """Execute an operation with retry.

        Args:
            operation: Zero-argument coroutine factory
            cancel_token: Aborts before an attempt, during an attempt or during a backoff sleep
            on_retry: Called as ``on_retry(attempt, error, wait_ms)`` before each wait

        Returns:
            RetryResult with success status and value/error

        Raises:
            OperationCancelledError: If the token is cancelled
        """
        state = self.initial_state()
        total_delay_ms = 0.0
        attempt = 0

        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            attempt += 1
            try:
                value = await run_cancellable(operation, cancel_token)
                return RetryResult(
                    success=True,
                    value=value,
                    attempts=attempt,
                    total_delay_ms=total_delay_ms,
                )
            except OperationCancelledError:
                raise
            except Exception as e:
                error_class = classify(e)
                if not is_transient(error_class) or state.exhausted:
                    return RetryResult(
                        success=False,
                        error=e,
                        error_class=error_class,
                        attempts=attempt,
                        total_delay_ms=total_delay_ms,
                    )

                wait_ms = self.calculate_delay_ms(state)
                self._report_retry(attempt, e, error_class, state, wait_ms, on_retry)

                await cancellable_sleep(wait_ms / 1000.0, cancel_token)
                total_delay_ms += wait_ms
                state = state.advance()

    @staticmethod
    def _report_retry(
        attempt: int,
        error: Exception,
        error_class: ErrorClass,
        state: RetryState,
        wait_ms: float,
        on_retry: Callable[[int, Exception, float], Any] | None,
    ) -> None:
        # Observability must not break the retry loop
        with contextlib.suppress(Exception):
            logger.warning(
                f"Retryable error ({error_class.value}). Retrying in {round(wait_ms)}ms",
                attempt=attempt,
                retries_left=state.remaining_attempts,
                wait_ms=round(wait_ms),
                error=str(error)[:120],
            )
        if on_retry is not None:
            with contextlib.suppress(Exception):
                on_retry(attempt, error, wait_ms)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay_ms: float = 1000,
    *,
    config: RetryConfig | None = None,
    cancel_token: CancelToken | None = None,
    on_retry: Callable[[int, Exception, float], Any] | None = None,
) -> T:
    """Execute an operation with retry, raising on failure.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Retries after the first attempt (0 = attempt once)
        initial_delay_ms: Delay before the first retry
        config: Full configuration; overrides max_attempts/initial_delay_ms
        cancel_token: Optional cancellation token
        on_retry: Optional hook called before each backoff

    Returns:
        Operation result

    Raises:
        The exception raised by the last attempt, unchanged
        ValidationError: On max_attempts < 0 or initial_delay_ms <= 0
        OperationCancelledError: If the token is cancelled
    """
    if config is None:
        config = RetryConfig(max_retries=max_attempts, initial_delay_ms=initial_delay_ms)
    policy = RetryPolicy(config)
    result = await policy.execute(operation, cancel_token=cancel_token, on_retry=on_retry)

    if result.success:
        return result.value
    raise result.error  # type: ignore[misc]
