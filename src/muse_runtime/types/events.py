"""
Streaming parser events.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ParserEvent(BaseModel):
    """Snapshot of one tagged section of a streamed response.

    While ``is_complete`` is False the content is a live preview that may
    still grow; once True it is final.
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Section text between the markers, trimmed")
    is_complete: bool = Field(default=False, description="Whether the close marker was seen")
