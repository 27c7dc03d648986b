"""
Incremental extraction of tagged sections from streamed text.

Chunks carry no boundary semantics: a marker such as ``[THOUGHT]`` may be
split across two chunks, or a whole section may arrive in one. Matching is
therefore always done against the cumulative buffer, never against the
chunk alone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from muse_runtime.errors import ValidationError
from muse_runtime.types.events import ParserEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

THOUGHT_OPEN = "[THOUGHT]"
THOUGHT_CLOSE = "[/THOUGHT]"
PROMPT_OPEN = "[PROMPT]"
PROMPT_CLOSE = "[/PROMPT]"


class TagParser:
    """Tracks one open/close marker pair over a growing buffer.

    Offsets are recorded once and never move. Not safe for concurrent
    feeding; one parser belongs to one stream.

    Example:
        >>> parser = TagParser()
        >>> parser.feed("prefix [THOUGHT]abc")
        ParserEvent(content='abc', is_complete=False)
        >>> parser.feed("def[/THOUGHT] suffix")
        ParserEvent(content='abcdef', is_complete=True)
    """

    def __init__(self, open_tag: str = THOUGHT_OPEN, close_tag: str = THOUGHT_CLOSE) -> None:
        if not open_tag or not close_tag:
            raise ValidationError("open_tag and close_tag must be non-empty")
        self._open_tag = open_tag
        self._close_tag = close_tag
        self._buffer = ""
        self._open_end: int | None = None
        self._close_start: int | None = None
        # Where the next search may start without missing a split marker
        self._open_scan_from = 0
        self._close_scan_from = 0

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def opened(self) -> bool:
        return self._open_end is not None

    @property
    def is_complete(self) -> bool:
        return self._close_start is not None

    def feed(self, chunk: str) -> ParserEvent | None:
        """Append a chunk and report the section as seen so far.

        Returns:
            None while the open marker has not appeared, otherwise the
            current section content
        """
        self._buffer += chunk

        if self._open_end is None:
            index = self._buffer.find(self._open_tag, self._open_scan_from)
            if index == -1:
                self._open_scan_from = max(0, len(self._buffer) - len(self._open_tag) + 1)
                return None
            self._open_end = index + len(self._open_tag)
            self._close_scan_from = self._open_end

        if self._close_start is None:
            index = self._buffer.find(self._close_tag, self._close_scan_from)
            if index == -1:
                self._close_scan_from = max(
                    self._open_end, len(self._buffer) - len(self._close_tag) + 1
                )
            else:
                self._close_start = index

        return self.current()

    def current(self) -> ParserEvent | None:
        """Section snapshot without feeding anything."""
        if self._open_end is None:
            return None
        end = self._close_start if self._close_start is not None else len(self._buffer)
        return ParserEvent(
            content=self._buffer[self._open_end:end].strip(),
            is_complete=self._close_start is not None,
        )

    def finalize(self, default: str = "") -> str:
        """Final section text, or ``default`` when either marker is missing."""
        return extract_section(self._buffer, self._open_tag, self._close_tag, default)


def extract_section(
    text: str,
    open_tag: str,
    close_tag: str,
    default: str = "",
) -> str:
    """Extract the first complete ``open_tag ... close_tag`` section.

    Args:
        text: Full response text
        open_tag: Opening marker
        close_tag: Closing marker
        default: Returned when the pair is not present

    Returns:
        Trimmed section content, or ``default``
    """
    start = text.find(open_tag)
    if start == -1:
        return default
    start += len(open_tag)
    end = text.find(close_tag, start)
    if end == -1:
        return default
    return text[start:end].strip()


async def parse_stream(
    chunks: AsyncIterable[str],
    parser: TagParser | None = None,
) -> AsyncIterator[ParserEvent]:
    """Feed a chunk stream through a parser, yielding section snapshots.

    Single-pass: iterating the result consumes ``chunks``. Chunks that do
    not change the snapshot are skipped.

    Args:
        chunks: Text chunks in arrival order
        parser: Parser to feed; a THOUGHT parser by default

    Yields:
        ParserEvent for every change once the open marker is seen
    """
    parser = parser or TagParser()
    last: ParserEvent | None = None
    async for chunk in chunks:
        event = parser.feed(chunk)
        if event is not None and event != last:
            last = event
            yield event
