"""HTTP 传输层：基于 httpx 的异步客户端，实现一元、流式与长任务三种调用形态。

HTTP transport for the generative backend using httpx.

Provides:
- Unary generateContent calls
- Server-sent-event streaming decoded into text chunks
- Long-running job start, status polling and asset download
- Mapping of httpx failures and HTTP error responses onto muse-runtime errors
"""

from __future__ import annotations

import json
import os
from contextlib import suppress
from typing import TYPE_CHECKING, Any

import httpx

from muse_runtime.errors import PipelineError, RemoteError, TransportError
from muse_runtime.transport.auth import get_auth_header, require_api_key
from muse_runtime.transport.base import response_text
from muse_runtime.types import LongRunningOperation

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Default timeouts
_DEFAULT_TIMEOUT = 60.0
_DEFAULT_CONNECT_TIMEOUT = 10.0


class GeminiTransport:
    """HTTP transport for the Gemini API.

    Example:
        >>> transport = GeminiTransport(api_key="AIza...")
        >>> body = await transport.invoke("gemini-3-flash-preview", payload)
        >>> async for text in transport.invoke_stream("gemini-3-flash-preview", payload):
        ...     print(text, end="")
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize HTTP transport.

        Args:
            api_key: Explicit API key (overrides environment)
            base_url: Override base URL (or MUSE_BASE_URL)
            timeout: Request timeout in seconds (or MUSE_HTTP_TIMEOUT_SECS)
            client: Pre-built httpx client, mainly for tests

        Raises:
            CredentialError: If no API key can be resolved
        """
        self._api_key = require_api_key(api_key)
        self._base_url = (base_url or os.getenv("MUSE_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")

        self._timeout = timeout
        if self._timeout is None:
            env_timeout = os.getenv("MUSE_HTTP_TIMEOUT_SECS")
            if env_timeout:
                with suppress(ValueError):
                    self._timeout = float(env_timeout)
        if self._timeout is None:
            self._timeout = _DEFAULT_TIMEOUT

        self._client = client
        self._owns_client = client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=_DEFAULT_CONNECT_TIMEOUT),
                follow_redirects=True,
            )
        return self._client

    def _headers(self, accept: str = "application/json") -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": accept,
        }
        headers.update(get_auth_header(self._api_key))
        return headers

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    @staticmethod
    def _raise_for_status(response: httpx.Response, body_bytes: bytes | None = None) -> None:
        if response.status_code < 400:
            return
        body = None
        with suppress(ValueError):
            body = json.loads(body_bytes if body_bytes is not None else response.content)
        raise RemoteError.from_response(
            response.status_code,
            body if isinstance(body, dict) else None,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request.

        Raises:
            TransportError: On network/connection errors
            RemoteError: On API errors (4xx, 5xx)
        """
        client = self._get_client()
        url = self._url(path)
        try:
            response = await client.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", url=url, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Connection failed: {e}", url=url, cause=e) from e

        self._raise_for_status(response)
        return response

    async def invoke(self, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Unary generateContent call."""
        response = await self.request(
            "POST", f"models/{model}:generateContent", json_body=payload
        )
        return response.json()

    async def invoke_stream(self, model: str, payload: dict[str, Any]) -> AsyncIterator[str]:
        """Streaming generateContent call, yielding text as it arrives."""
        client = self._get_client()
        url = self._url(f"models/{model}:streamGenerateContent")
        try:
            async with client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                json=payload,
                headers=self._headers(accept="text/event-stream"),
            ) as response:
                if response.status_code >= 400:
                    self._raise_for_status(response, await response.aread())

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data or data == "[DONE]":
                        continue
                    try:
                        frame = json.loads(data)
                    except ValueError as e:
                        # Frame text kept out of str(error)
                        error = PipelineError("Malformed stream frame", stage="sse_decode")
                        error.context.details["frame"] = data[:80]
                        raise error from e
                    if isinstance(frame, dict) and "error" in frame:
                        error_obj = frame["error"]
                        code = error_obj.get("code") if isinstance(error_obj, dict) else None
                        raise RemoteError.from_response(code if isinstance(code, int) else 500, frame)
                    text = response_text(frame) if isinstance(frame, dict) else ""
                    if text:
                        yield text
        except httpx.TimeoutException as e:
            raise TransportError(f"Stream timed out: {e}", url=url, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Connection failed: {e}", url=url, cause=e) from e

    async def start(self, model: str, payload: dict[str, Any]) -> LongRunningOperation:
        """Start a long-running predictLongRunning job."""
        response = await self.request(
            "POST", f"models/{model}:predictLongRunning", json_body=payload
        )
        return LongRunningOperation.model_validate(response.json())

    async def poll(self, handle: str) -> LongRunningOperation:
        """Fetch the status of an operation by name."""
        response = await self.request("GET", handle)
        return LongRunningOperation.model_validate(response.json())

    async def download(self, uri: str) -> bytes:
        """Download an asset produced by a finished job."""
        response = await self.request("GET", uri)
        return response.content

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> GeminiTransport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
