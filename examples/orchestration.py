#!/usr/bin/env python3
"""
Request orchestration example.

This example demonstrates the orchestration primitives on their own and
through the client:
- Retry with exponential backoff over classified errors
- FIFO admission control shared by concurrent callers
- Live reasoning previews from a streamed response
- Cancelling a long wait

Usage:
    export MUSE_API_KEY="your-api-key"
    python examples/orchestration.py
"""

import asyncio

from muse_runtime import (
    CancelToken,
    ConcurrencyLimiter,
    MuseClient,
    OperationCancelledError,
    RemoteError,
    with_retry,
)
from muse_runtime.types import ParserEvent


async def retry_example() -> None:
    """Retry a flaky operation."""
    print("Retry with backoff...")
    attempts = [0]

    async def flaky() -> str:
        attempts[0] += 1
        if attempts[0] < 3:
            raise RemoteError("The model is overloaded.", status_code=503)
        return "ok"

    result = await with_retry(flaky, max_attempts=3, initial_delay_ms=100)
    print(f"Result: {result} after {attempts[0]} attempts")
    print()


async def limiter_example() -> None:
    """Bound concurrent work with a shared limiter."""
    print("Admission control...")
    limiter = ConcurrencyLimiter(2)

    async def job(n: int) -> int:
        async with limiter.slot():
            print(f"  job {n} running, {limiter}")
            await asyncio.sleep(0.1)
            return n

    results = await asyncio.gather(*(job(i) for i in range(5)))
    print(f"Results: {results}")
    print(f"Stats: {limiter.get_stats()}")
    print()


async def client_example() -> None:
    """Refine a prompt and render it."""
    print("Client...")

    def on_thought(event: ParserEvent) -> None:
        marker = "done" if event.is_complete else "..."
        print(f"  [{marker}] {event.content[:70]}")

    async with MuseClient() as client:
        for line in await client.run_diagnostics():
            print(f"  {line}")

        if not client.has_credential:
            return

        refined = await client.refine_prompt("a lighthouse", "ink wash", on_thought)
        print(f"Refined prompt: {refined.refined_prompt}")

        image = await client.generate_image(refined.refined_prompt)
        print(f"Image: {image.mime_type}, {len(image.data)} chars")
    print()


async def cancel_example() -> None:
    """Cancel a retry loop from another task."""
    print("Cancellation...")
    token = CancelToken()

    async def always_busy() -> str:
        raise RemoteError("busy", status_code=503)

    asyncio.get_running_loop().call_later(0.2, token.cancel)
    try:
        await with_retry(always_busy, max_attempts=5, initial_delay_ms=1000, cancel_token=token)
    except OperationCancelledError as e:
        print(f"Stopped: {e}")
    print()


async def main() -> None:
    """Run orchestration examples."""
    await retry_example()
    await limiter_example()
    await cancel_example()
    await client_example()


if __name__ == "__main__":
    asyncio.run(main())
