"""
Client layer - User-facing API for muse-runtime.

Provides:
- MuseClient: Facade composing limiter, retry, parser and poller per operation
- ModelConfig: Model identifiers per operation
- Response types
"""

from muse_runtime.client.config import ModelConfig
from muse_runtime.client.core import MuseClient
from muse_runtime.client.response import ImageResult, RefinedPrompt, SocialCopy, VideoResult

__all__ = [
    "ImageResult",
    "ModelConfig",
    "MuseClient",
    "RefinedPrompt",
    "SocialCopy",
    "VideoResult",
]
