"""
Backend boundary.

The remote generative backend is reached through three call shapes: a
unary call, a streaming call yielding text chunks, and a long-running
call returning a handle that is polled until done.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from muse_runtime.types import LongRunningOperation


@runtime_checkable
class GenerativeBackend(Protocol):
    """Remote generative-AI capability."""

    async def invoke(self, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Unary request returning the parsed response body."""
        ...

    def invoke_stream(self, model: str, payload: dict[str, Any]) -> AsyncIterator[str]:
        """Streaming request yielding text chunks until the stream ends."""
        ...

    async def start(self, model: str, payload: dict[str, Any]) -> LongRunningOperation:
        """Start a long-running job."""
        ...

    async def poll(self, handle: str) -> LongRunningOperation:
        """Fetch the current status of a long-running job."""
        ...

    async def download(self, uri: str) -> bytes:
        """Fetch an asset produced by a finished job."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


def response_text(body: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = body.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


def response_inline_data(body: dict[str, Any]) -> dict[str, Any] | None:
    """First inline-data part (``{"mimeType", "data"}``) of the first candidate."""
    candidates = body.get("candidates") or []
    if not candidates:
        return None
    for part in (candidates[0].get("content") or {}).get("parts") or []:
        if isinstance(part, dict):
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                return inline
    return None
