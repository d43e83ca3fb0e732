"""Server-Sent Events framing.

Only ``data:`` lines are used: every event is ``data: <json>\\n\\n``.
"""

import json
import logging

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_event(payload: dict) -> str:
    """Frame ``payload`` as a single SSE event."""
    return f"{DATA_PREFIX}{json.dumps(payload)}\n\n"


class SSEDecoder:
    """Incremental decoder for ``data:`` events.

    Network chunks can split a line anywhere, so the trailing partial line of
    each chunk is kept until the next one completes it.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[dict]:
        """Consume ``chunk`` and return every event it completed."""
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return [event for event in map(self._parse_line, lines) if event is not None]

    def flush(self) -> list[dict]:
        """Parse whatever is left once the stream has ended."""
        rest, self._buffer = self._buffer, ""
        event = self._parse_line(rest)
        return [event] if event is not None else []

    @staticmethod
    def _parse_line(line: str) -> dict | None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None
        try:
            return json.loads(line[len(DATA_PREFIX):])
        except json.JSONDecodeError:
            logger.warning("Skipping malformed SSE line: %r", line)
            return None
