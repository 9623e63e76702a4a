"""Incremental decoder for ``text/event-stream`` chat-completion bodies.

``FrameParser`` is fed raw byte chunks exactly as they arrive from the
network and returns the ``StreamEvent`` values each chunk completes.
One parser serves one session.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncGenerator, AsyncIterable, Generator

from pilot_llm.types import DoneEvent, StreamEvent, TokenEvent

from .extract import extract_text

_logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"
_FRAME_DELIMITER = "\n\n"


class FrameParser:
    """Split an SSE byte stream into frames and frames into token events.

    States:
      open      - consuming chunks
      finished  - Done emitted (marker seen or stream closed); further input
                  is ignored
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.buffer = ""
        self.finished = False

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Feed one network chunk and return the events it completes.

        The chunk is consumed immediately; a partial frame stays in
        ``buffer`` until a later chunk closes it.
        """
        events: list[StreamEvent] = []
        if self.finished:
            return events
        # The incremental decoder holds back an incomplete trailing codepoint
        self.buffer += self._decoder.decode(chunk)
        self.buffer = self.buffer.replace("\r\n", "\n")

        while not self.finished:
            boundary = self.buffer.find(_FRAME_DELIMITER)
            if boundary < 0:
                break
            frame = self.buffer[:boundary]
            self.buffer = self.buffer[boundary + len(_FRAME_DELIMITER):]
            events.extend(self._handle_frame(frame))
        return events

    def finish(self) -> list[StreamEvent]:
        """Call when the byte stream closes.  Flushes and ends with ``DoneEvent``."""
        events: list[StreamEvent] = []
        if self.finished:
            return events
        self.buffer += self._decoder.decode(b"", final=True)
        remainder, self.buffer = self.buffer, ""
        if remainder.strip():
            events.extend(self._handle_frame(remainder))
        if not self.finished:
            self.finished = True
            events.append(DoneEvent())
        return events

    def _handle_frame(self, frame: str) -> Generator[StreamEvent, None, None]:
        for raw_line in frame.split("\n"):
            line = raw_line.strip()
            if not line or line.startswith(":"):
                continue
            if not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if data == DONE_MARKER:
                self.finished = True
                yield DoneEvent()
                return
            try:
                payload = json.loads(data)
            except json.JSONDecodeError as e:
                _logger.warning("Skipping malformed SSE payload %r: %s", data[:200], e)
                continue
            text = extract_text(payload)
            if text:
                yield TokenEvent(text)


async def iter_events(
    chunks: AsyncIterable[bytes],
) -> AsyncGenerator[StreamEvent, None]:
    """Decode an async byte stream into events, ending with ``DoneEvent``.

    Stops reading as soon as the done marker is seen, without waiting for
    the server to close the connection.
    """
    parser = FrameParser()
    async for chunk in chunks:
        for event in parser.feed(chunk):
            yield event
        if parser.finished:
            return
    for event in parser.finish():
        yield event
