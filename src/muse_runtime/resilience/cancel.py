"""
Cooperative cancellation.

A CancelToken is threaded through retry and poll loops. Cancellation takes
effect at the next suspension point: before an attempt, during a backoff or
poll-interval sleep, or while a backend call is in flight.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from muse_runtime.errors import OperationCancelledError
from muse_runtime.telemetry import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = get_logger("muse_runtime.cancel")


class CancelReason(str, Enum):
    """Reasons for cancellation."""

    USER_REQUEST = "user_request"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


@dataclass
class CancelState:
    """State of a cancellation token.

    Attributes:
        cancelled: Whether cancellation was requested
        reason: Reason for cancellation
        timestamp: Time of cancellation
    """

    cancelled: bool = False
    reason: CancelReason | None = None
    timestamp: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class CancelToken:
    """Cancellation token for retry and poll loops.

    Example:
        >>> token = CancelToken(timeout=120.0)
        >>> op = await poll_until_done(handle, fetch, cancel_token=token)
        >>>
        >>> # From another task
        >>> token.cancel(CancelReason.USER_REQUEST)
    """

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize cancellation token.

        Args:
            timeout: Optional deadline in seconds, after which the token
                cancels itself with CancelReason.TIMEOUT
        """
        self._state = CancelState()
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[CancelReason], Any]] = []
        self._deadline = time.monotonic() + timeout if timeout else None
        self._timeout_task: asyncio.Task[None] | None = None

        self._start_timeout()

    def _start_timeout(self) -> None:
        """Schedule the deadline on the running loop, once.

        Outside a loop the deadline is still enforced by the checks in
        is_cancelled; the timer is scheduled on the first wait.
        """
        if self._deadline is None or self._timeout_task is not None or self._state.cancelled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        async def timeout_handler() -> None:
            await asyncio.sleep(max(0.0, self._deadline - time.monotonic()))  # type: ignore[operator]
            if not self._state.cancelled:
                self.cancel(CancelReason.TIMEOUT)

        self._timeout_task = loop.create_task(timeout_handler())

    def _check_deadline(self) -> None:
        if (
            self._deadline is not None
            and not self._state.cancelled
            and time.monotonic() >= self._deadline
        ):
            self.cancel(CancelReason.TIMEOUT)

    def cancel(
        self,
        reason: CancelReason = CancelReason.USER_REQUEST,
        **metadata: Any,
    ) -> bool:
        """Request cancellation.

        Returns:
            True if cancellation was newly requested, False if already cancelled
        """
        if self._state.cancelled:
            return False

        self._state.cancelled = True
        self._state.reason = reason
        self._state.timestamp = time.time()
        self._state.metadata.update(metadata)

        self._event.set()

        if self._timeout_task and not self._timeout_task.done():
            self._timeout_task.cancel()

        for callback in self._callbacks:
            self._invoke(callback, reason)

        return True

    @staticmethod
    def _invoke(callback: Callable[[CancelReason], Any], reason: CancelReason) -> None:
        try:
            callback(reason)
        except Exception:
            logger.exception("Cancel callback failed", reason=reason.value)

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested or the deadline passed."""
        self._check_deadline()
        return self._state.cancelled

    @property
    def reason(self) -> CancelReason | None:
        """Get cancellation reason."""
        self._check_deadline()
        return self._state.reason

    @property
    def state(self) -> CancelState:
        """Get full cancellation state."""
        return self._state

    async def wait(self) -> CancelReason:
        """Wait until cancellation is requested."""
        self._check_deadline()
        self._start_timeout()
        await self._event.wait()
        return self._state.reason or CancelReason.USER_REQUEST

    async def wait_with_timeout(self, timeout: float) -> bool:
        """Wait for cancellation with a timeout.

        Returns:
            True if cancelled, False if the timeout elapsed first
        """
        self._check_deadline()
        self._start_timeout()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def on_cancel(self, callback: Callable[[CancelReason], Any]) -> CancelToken:
        """Register a callback to be called on cancellation."""
        self._callbacks.append(callback)
        if self._state.cancelled and self._state.reason:
            self._invoke(callback, self._state.reason)
        return self

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if cancelled."""
        if self.is_cancelled:
            raise OperationCancelledError(self._state.reason)


async def cancellable_sleep(delay: float, token: CancelToken | None = None) -> None:
    """Sleep for ``delay`` seconds, waking early if ``token`` is cancelled.

    Raises:
        OperationCancelledError: If the token is or becomes cancelled
    """
    if token is None:
        await asyncio.sleep(delay)
        return

    token.raise_if_cancelled()
    if await token.wait_with_timeout(delay):
        token.raise_if_cancelled()


async def run_cancellable(
    operation: Callable[[], Awaitable[T]],
    token: CancelToken | None = None,
) -> T:
    """Await ``operation()``, abandoning it as soon as ``token`` fires.

    The in-flight call is cancelled when the token wins; whatever it
    raises while unwinding is discarded.

    Raises:
        OperationCancelledError: If the token is or becomes cancelled first
    """
    if token is None:
        return await operation()

    token.raise_if_cancelled()
    task = asyncio.ensure_future(operation())
    watcher = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        watcher.cancel()
        raise

    if task.done():
        watcher.cancel()
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    logger.debug("In-flight call abandoned", reason=token.reason.value if token.reason else None)
    raise OperationCancelledError(token.reason)
