"""
Transport layer - Access to the remote generative backend.

Provides:
- GenerativeBackend: The unary / streaming / long-running call boundary
- GeminiTransport: httpx implementation of that boundary
- API key resolution
"""

from muse_runtime.transport.auth import get_auth_header, require_api_key, resolve_api_key
from muse_runtime.transport.base import (
    GenerativeBackend,
    response_inline_data,
    response_text,
)
from muse_runtime.transport.http import DEFAULT_BASE_URL, GeminiTransport

__all__ = [
    "DEFAULT_BASE_URL",
    "GeminiTransport",
    "GenerativeBackend",
    "get_auth_header",
    "require_api_key",
    "resolve_api_key",
    "response_inline_data",
    "response_text",
]
