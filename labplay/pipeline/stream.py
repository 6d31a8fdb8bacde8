"""
Decoder for the agent's event-stream responses.

Frames look like::

    data: {"type": "status", "text": "Loading dataset"}

and are separated by a blank line. Transport chunks rarely line up with frame
boundaries, so the tail of each read is buffered and joined with the next one.
"""

import codecs
import json
from typing import Any, Dict, Iterable, Iterator, List

from labplay.logger import get_logger

logger = get_logger(__name__)

DATA_PREFIX = "data:"
FRAME_SEPARATOR = "\n\n"


class StreamDecoder:
    """Incremental bytes -> event dict decoder. Use one instance per response."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        """Consume one transport chunk and return the events it completed."""
        text = self._decoder.decode(chunk)
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        parts = self._buffer.split(FRAME_SEPARATOR)
        self._buffer = parts.pop()
        events = []
        for part in parts:
            event = _parse_frame(part)
            if event is not None:
                events.append(event)
        return events

    @property
    def pending(self) -> str:
        """Data held back waiting for its frame terminator."""
        return self._buffer


def _parse_frame(block: str):
    data_line = next((line for line in block.split("\n") if line.startswith(DATA_PREFIX)), None)
    if data_line is None:
        return None
    payload = data_line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    try:
        event = json.loads(payload)
    except ValueError:
        logger.debug("Ignoring malformed stream frame: %.120s", payload)
        return None
    if not isinstance(event, dict):
        logger.debug("Ignoring non-object stream frame: %.120s", payload)
        return None
    return event


def decode_stream(chunks: Iterable[bytes]) -> Iterator[Dict[str, Any]]:
    """
    Lazily yield events from an iterable of byte chunks.

    An unterminated frame left over when the chunks run out is discarded.
    """
    decoder = StreamDecoder()
    for chunk in chunks:
        if not chunk:
            continue
        yield from decoder.feed(chunk)
    if decoder.pending.strip():
        logger.debug("Discarding unterminated trailing frame (%d chars)", len(decoder.pending))
