"""
Concurrency limiter (admission control).

Bounds the number of backend operations in flight for one client. Callers
beyond the bound wait in a FIFO queue; a release hands the freed slot
straight to the oldest waiter.
"""

from __future__ import annotations

import asyncio
import os
from collections import deque
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from muse_runtime.errors import ValidationError
from muse_runtime.telemetry import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

T = TypeVar("T")

logger = get_logger("muse_runtime.limiter")


@dataclass
class LimiterConfig:
    """Configuration for the concurrency limiter.

    Attributes:
        max_concurrent: Maximum operations admitted at once (>= 1)
    """

    max_concurrent: int = 5

    @classmethod
    def from_env(cls) -> LimiterConfig:
        """Create configuration from environment variables."""
        return cls(max_concurrent=int(os.getenv("MUSE_MAX_CONCURRENT", "5")))


class ConcurrencyLimiter:
    """FIFO admission gate.

    One instance is created at client startup and shared by every call
    site that talks to the backend. It has no teardown and no acquire
    timeout: a caller waits until a slot is released.

    Example:
        >>> limiter = ConcurrencyLimiter(5)
        >>> async with limiter.slot():
        ...     await call_backend()

        >>> # Or with execute
        >>> result = await limiter.execute(call_backend)
    """

    def __init__(self, max_concurrent: int | LimiterConfig = 5) -> None:
        """Initialize the limiter.

        Args:
            max_concurrent: Slot count, or a LimiterConfig

        Raises:
            ValidationError: If max_concurrent < 1
        """
        if isinstance(max_concurrent, LimiterConfig):
            max_concurrent = max_concurrent.max_concurrent
        if max_concurrent < 1:
            raise ValidationError(
                f"max_concurrent must be >= 1, got {max_concurrent}",
                field="max_concurrent",
            )

        self._max_concurrent = max_concurrent
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

        # Statistics
        self._peak_running = 0
        self._total_admitted = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        """Number of admitted, unreleased operations."""
        return self._running

    @property
    def pending_count(self) -> int:
        """Number of callers waiting for a slot."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    def _admit(self) -> None:
        self._running += 1
        self._total_admitted += 1
        self._peak_running = max(self._peak_running, self._running)

    async def acquire(self) -> None:
        """Wait for a slot.

        Admits immediately while below capacity, otherwise suspends at the
        tail of the queue. Every successful acquire must be paired with
        exactly one release().
        """
        if self._running < self._max_concurrent:
            self._admit()
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was already handed over; pass it on
                self.release()
            else:
                with suppress(ValueError):
                    self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        """Free a slot, handing it to the oldest waiter if there is one.

        Never raises. A release without a matching acquire is logged and
        ignored.
        """
        if self._running <= 0:
            logger.warning("release() called with no active slot")
            return

        self._running -= 1
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._admit()
            waiter.set_result(None)
            break

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold a slot for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run an operation inside a slot."""
        async with self.slot():
            return await operation()

    def get_stats(self) -> dict[str, int]:
        """Get limiter statistics."""
        return {
            "active": self._running,
            "pending": self.pending_count,
            "peak": self._peak_running,
            "total_admitted": self._total_admitted,
            "max_concurrent": self._max_concurrent,
        }

    def __repr__(self) -> str:
        return (
            f"ConcurrencyLimiter("
            f"active={self._running}/{self._max_concurrent}, "
            f"pending={self.pending_count})"
        )
