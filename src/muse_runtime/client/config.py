"""
Model selection for client operations.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class ModelConfig:
    """Model identifiers used by each facade operation.

    Attributes:
        text: Reasoning, inspiration and diagnostics model
        image: Image generation model
        video: Image-to-video model (long-running)
        social: Multimodal copywriting model
    """

    text: str = "gemini-3-flash-preview"
    image: str = "gemini-2.5-flash-image"
    video: str = "veo-3.1-fast-generate-preview"
    social: str = "gemini-2.0-flash"

    @classmethod
    def from_env(cls) -> ModelConfig:
        """Create configuration from environment variables."""
        defaults = cls()
        return cls(
            text=os.getenv("MUSE_TEXT_MODEL", defaults.text),
            image=os.getenv("MUSE_IMAGE_MODEL", defaults.image),
            video=os.getenv("MUSE_VIDEO_MODEL", defaults.video),
            social=os.getenv("MUSE_SOCIAL_MODEL", defaults.social),
        )
