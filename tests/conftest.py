"""Root pytest fixtures for muse-runtime tests."""

from __future__ import annotations

from typing import Any

import pytest

from muse_runtime.transport.auth import API_KEY_ENV_VARS
from muse_runtime.types import LongRunningOperation

TEST_API_KEY = "AIzaSyTestKey0123456789abcdefghij"


class StubBackend:
    """Scripted backend recording every call.

    Each queue entry is either a value to return or an exception to raise.
    Stream scripts are lists of chunks; an exception inside a script is
    raised after the chunks before it were delivered.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.invoke_results: list[Any] = []
        self.stream_scripts: list[list[Any]] = []
        self.start_results: list[Any] = []
        self.poll_results: list[Any] = []
        self.download_results: list[Any] = []
        self.payloads: list[dict[str, Any]] = []
        self.closed = False

    @staticmethod
    def _next(queue: list[Any]) -> Any:
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def invoke(self, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("invoke", model))
        self.payloads.append(payload)
        return self._next(self.invoke_results)

    async def invoke_stream(self, model: str, payload: dict[str, Any]):
        self.calls.append(("invoke_stream", model))
        self.payloads.append(payload)
        for item in self.stream_scripts.pop(0):
            if isinstance(item, Exception):
                raise item
            yield item

    async def start(self, model: str, payload: dict[str, Any]) -> LongRunningOperation:
        self.calls.append(("start", model))
        self.payloads.append(payload)
        return self._next(self.start_results)

    async def poll(self, handle: str) -> LongRunningOperation:
        self.calls.append(("poll", handle))
        return self._next(self.poll_results)

    async def download(self, uri: str) -> bytes:
        self.calls.append(("download", uri))
        return self._next(self.download_results)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def stub_backend() -> StubBackend:
    return StubBackend()


@pytest.fixture
def no_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every credential environment variable."""
    for var in API_KEY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def api_key(monkeypatch: pytest.MonkeyPatch, no_api_key: None) -> str:
    """Provide a credential through the environment."""
    monkeypatch.setenv("MUSE_API_KEY", TEST_API_KEY)
    return TEST_API_KEY


@pytest.fixture
def recorded_sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Replace backoff and poll-interval sleeps with an instant recorder.

    The recorder still honors cancellation tokens.
    """
    sleeps: list[float] = []

    async def fake_sleep(delay: float, token: Any = None) -> None:
        if token is not None:
            token.raise_if_cancelled()
        sleeps.append(delay)

    monkeypatch.setattr("muse_runtime.resilience.retry.cancellable_sleep", fake_sleep)
    monkeypatch.setattr("muse_runtime.resilience.poller.cancellable_sleep", fake_sleep)
    return sleeps
