"""
API key resolution utilities.

Resolves the backend credential from:
1. Explicit value
2. Environment variables (MUSE_API_KEY, GEMINI_API_KEY, API_KEY)
"""

from __future__ import annotations

import os

from muse_runtime.errors import CredentialError

API_KEY_ENV_VARS: tuple[str, ...] = ("MUSE_API_KEY", "GEMINI_API_KEY", "API_KEY")


def resolve_api_key(explicit_key: str | None = None) -> str | None:
    """Resolve the API key.

    Args:
        explicit_key: Explicitly provided API key

    Returns:
        Resolved API key or None if not found
    """
    if explicit_key:
        return explicit_key

    for env_var in API_KEY_ENV_VARS:
        key = os.getenv(env_var)
        if key:
            return key

    return None


def require_api_key(explicit_key: str | None = None) -> str:
    """Resolve the API key or fail before any network call.

    Raises:
        CredentialError: If no key is configured
    """
    key = resolve_api_key(explicit_key)
    if not key:
        raise CredentialError()
    return key


def get_auth_header(api_key: str | None = None) -> dict[str, str]:
    """Get the authentication header for the backend."""
    key = resolve_api_key(api_key)
    if not key:
        return {}
    return {"x-goog-api-key": key}
