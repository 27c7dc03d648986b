"""
Response types for client operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field


@dataclass
class RefinedPrompt:
    """Result of prompt refinement.

    Attributes:
        thought: The model's reasoning section
        refined_prompt: Prompt to hand to the image model
        fallback: True when the backend failed and defaults were used
    """

    thought: str
    refined_prompt: str
    fallback: bool = False


@dataclass
class ImageResult:
    """Generated image.

    Attributes:
        data: ``data:<mime>;base64,<payload>`` URL
        source: Human-readable model label
    """

    data: str
    source: str

    @property
    def mime_type(self) -> str:
        return self.data[len("data:"):].split(";", 1)[0]


@dataclass
class VideoResult:
    """Generated video.

    Attributes:
        uri: Asset URI reported by the finished job
        data: Downloaded video bytes
        mime_type: MIME type of the video
        operation_name: Handle of the job that produced it
    """

    uri: str
    data: bytes = field(repr=False)
    mime_type: str = "video/mp4"
    operation_name: str | None = None


class SocialCopy(BaseModel):
    """Social media post for a generated artwork."""

    title: str = Field(description="Catchy 3-5 word headline")
    text: str = Field(description="Caption, at most 280 characters")
    hashtags: list[str] = Field(default_factory=list)
