"""
Long-running operation state.

Mirrors the backend's operation resource: a handle (``name``), a ``done``
flag and, once done, either an ``error`` or a ``response``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LongRunningOperation(BaseModel):
    """Status of an asynchronous backend job."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(description="Opaque handle used to re-poll the job")
    done: bool = Field(default=False, description="Whether the job reached a terminal state")
    error: dict[str, Any] | None = Field(default=None, description="Backend-reported failure")
    response: dict[str, Any] | None = Field(default=None, description="Result payload")
    metadata: dict[str, Any] | None = Field(default=None, description="Progress metadata")

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        """Human-readable message from the error payload."""
        if not self.error:
            return ""
        message = self.error.get("message")
        return message if isinstance(message, str) and message else "Unknown backend error"
