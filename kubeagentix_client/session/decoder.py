"""Chunk decoder — raw body bytes in, typed events out.

Network reads never line up with record or character boundaries, so bytes
go through an incremental UTF-8 decoder into a single text buffer. Every
newline-terminated line is a candidate record; the unterminated tail stays
buffered until more bytes (or the end of the stream) arrive.
"""

from __future__ import annotations

import codecs
import logging
from typing import AsyncIterable, AsyncIterator

from kubeagentix_client.errors import MalformedRecordError
from kubeagentix_client.session.models import AnyEvent, parse_event

logger = logging.getLogger(__name__)

RECORD_SEPARATOR = "\n"


class ChunkDecoder:
    """One instance per stream."""

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._malformed = 0

    @property
    def malformed_count(self) -> int:
        return self._malformed

    @property
    def pending(self) -> str:
        """The buffered, not yet terminated tail."""
        return self._buffer

    def feed(self, data: bytes) -> list[AnyEvent]:
        """Decode one read and return every record it completed, in order."""
        self._buffer += self._text.decode(data)
        *lines, self._buffer = self._buffer.split(RECORD_SEPARATOR)
        return self._parse_lines(lines)

    def finish(self) -> list[AnyEvent]:
        """Flush the decoder at end of stream and parse any trailing record."""
        self._buffer += self._text.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return self._parse_lines([tail])

    def _parse_lines(self, lines: list[str]) -> list[AnyEvent]:
        events: list[AnyEvent] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(parse_event(line))
            except MalformedRecordError as exc:
                self._malformed += 1
                logger.warning("Skipping malformed record (%s): %.200s", exc, line)
        return events


async def decode_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[AnyEvent]:
    """Convenience wrapper: ``async for event in decode_stream(body): ...``"""
    decoder = ChunkDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.finish():
        yield event
