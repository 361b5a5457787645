"""Stream Processor — incremental SSE decoding into normalized chunks.

Turns the byte segments of an HTTP response body into ``data:`` / ``event:``
lines and hands every data payload to the active adapter's frame parser.

Decoding rules:
  - One stateful UTF-8 decoder per stream, so a multi-byte character split
    across two reads decodes correctly
  - The trailing partial line stays buffered until the next read
  - Empty payloads, ``{}`` heartbeats and ``:`` comment lines are skipped
  - The vendor's done-sentinel or terminal event name ends the stream with a
    synthesized terminal chunk; nothing after it is read
  - A frame that fails JSON parsing or schema validation is dropped; the
    stream continues with the next frame
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterator, Callable, Collection

from promptstream.gateway.errors import no_response_body, parsing_error
from promptstream.gateway.types import StreamChunk

logger = logging.getLogger(__name__)

FrameParser = Callable[[str, str], "StreamChunk | None"]

DATA_PREFIX = "data:"
EVENT_PREFIX = "event:"
_HEARTBEATS = ("", "{}")


class SSELineDecoder:
    """Accumulates byte segments and releases complete text lines."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, segment: bytes) -> list[str]:
        self._buffer += self._decoder.decode(segment)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def flush(self) -> list[str]:
        """Return whatever is left once the byte stream has ended."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return [tail] if tail.strip() else []


class StreamProcessor:
    """Decodes one vendor's SSE body into ``StreamChunk`` objects.

    One processor instance is shared by every stream of an adapter; all
    per-stream state lives inside ``process``.
    """

    def __init__(
        self,
        parse_frame: FrameParser,
        *,
        vendor_label: str,
        done_sentinel: str | None = None,
        terminal_events: Collection[str] = (),
    ):
        self.parse_frame = parse_frame
        self.vendor_label = vendor_label
        self.done_sentinel = done_sentinel
        self.terminal_events = frozenset(terminal_events)

    async def process(
        self,
        byte_stream: AsyncIterator[bytes] | None,
        request_id: str,
    ) -> AsyncIterator[StreamChunk]:
        """Yield chunks until a terminal chunk, or until the body runs out.

        A body that ends without any terminal signal still gets exactly one
        synthesized terminal chunk.
        """
        if byte_stream is None:
            raise no_response_body(self.vendor_label)

        decoder = SSELineDecoder()
        frames = 0

        async for segment in byte_stream:
            for line in decoder.feed(segment):
                chunk = self.process_line(line, request_id)
                if chunk is None:
                    continue
                frames += 1
                yield chunk
                if chunk.is_complete:
                    return

        for line in decoder.flush():
            chunk = self.process_line(line, request_id)
            if chunk is None:
                continue
            frames += 1
            yield chunk
            if chunk.is_complete:
                return

        logger.info(
            "%s stream for %s ended without a completion marker after %d chunks",
            self.vendor_label,
            request_id,
            frames,
        )
        yield StreamChunk(request_id=request_id, content="", is_complete=True)

    def process_line(self, line: str, request_id: str) -> StreamChunk | None:
        """Map one complete line to a chunk, or ``None`` to skip it."""
        line = line.strip()
        if not line or line.startswith(":"):
            return None

        if line.startswith(EVENT_PREFIX):
            event = line[len(EVENT_PREFIX) :].strip()
            if event in self.terminal_events:
                return StreamChunk(request_id=request_id, content="", is_complete=True)
            return None

        if not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX) :].strip()
        if data in _HEARTBEATS:
            return None

        if self.done_sentinel is not None and data == self.done_sentinel:
            return StreamChunk(request_id=request_id, content="", is_complete=True)

        try:
            return self.parse_frame(data, request_id)
        except ValueError as e:
            error = parsing_error(e, data)
            logger.warning("Skipping unparseable %s frame (%s): %s", self.vendor_label, error.code, error.message)
            return None
