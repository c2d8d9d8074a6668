"""Server-sent event framing.

An SSE event is a block of ``field: value`` lines terminated by a blank
line, so ``"\\n\\n"`` marks the end of every complete event.  Upstream bytes
arrive in arbitrary chunks; :class:`SSEFrameBuffer` reassembles them and
hands back only whole events, byte-for-byte as received.
"""

from __future__ import annotations

import codecs
import json
from typing import Any

EVENT_DELIMITER = "\n\n"


def format_sse_event(event: str, data: Any) -> str:
    """Render one event as ``event: <type>\\ndata: <json>\\n\\n``."""
    payload = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return f"event: {event}\ndata: {payload}{EVENT_DELIMITER}"


class SSEFrameBuffer:
    """Incremental splitter for an SSE byte stream.

    Bytes are decoded with an incremental UTF-8 decoder, so a multi-byte
    character split across two chunks is decoded once both halves arrive.
    Text after the last delimiter stays buffered until the rest of its event
    shows up; it is never returned as a frame.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Buffered text that does not yet form a complete event."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Add ``chunk`` and return every event it completes, in order.

        Each returned frame includes its trailing ``"\\n\\n"``.
        """
        self._buffer += self._decoder.decode(chunk)
        frames: list[str] = []
        end = self._buffer.find(EVENT_DELIMITER)
        while end != -1:
            cut = end + len(EVENT_DELIMITER)
            frames.append(self._buffer[:cut])
            self._buffer = self._buffer[cut:]
            end = self._buffer.find(EVENT_DELIMITER)
        return frames

    def reset(self) -> str:
        """Drop buffered state and return the partial text that was discarded."""
        leftover = self._buffer + self._decoder.decode(b"", final=True)
        self._decoder.reset()
        self._buffer = ""
        return leftover
