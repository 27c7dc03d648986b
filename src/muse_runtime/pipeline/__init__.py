"""
Pipeline layer - Incremental processing of streamed responses.

Provides:
- TagParser: Tracks a marker-delimited section over a growing buffer
- parse_stream: Lazy sequence of section snapshots from a chunk stream
- extract_section: One-shot extraction over the full text
"""

from muse_runtime.pipeline.tags import (
    PROMPT_CLOSE,
    PROMPT_OPEN,
    THOUGHT_CLOSE,
    THOUGHT_OPEN,
    TagParser,
    extract_section,
    parse_stream,
)

__all__ = [
    "PROMPT_CLOSE",
    "PROMPT_OPEN",
    "THOUGHT_CLOSE",
    "THOUGHT_OPEN",
    "TagParser",
    "extract_section",
    "parse_stream",
]
