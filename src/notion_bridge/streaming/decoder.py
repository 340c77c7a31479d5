"""Incremental decoder for Notion's newline-delimited JSON response body."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

CONTENT_TYPE = "markdown-chat"


class NDJSONDecoder:
    """Turns arbitrarily split byte chunks into parsed JSON objects.

    Bytes are buffered and split strictly on ``\\n``; a trailing partial line
    waits for the next chunk. Lines that fail to parse are logged and skipped.
    """

    def __init__(self) -> None:
        self._buffer = b""
        self.malformed = 0

    def consume(self, data: bytes) -> list[Any]:
        self._buffer += data
        *lines, self._buffer = self._buffer.split(b"\n")
        return [obj for obj in map(self._parse, lines) if obj is not None]

    def flush(self) -> list[Any]:
        """Parse whatever is left once the body has ended."""
        tail, self._buffer = self._buffer, b""
        obj = self._parse(tail)
        return [] if obj is None else [obj]

    def _parse(self, line: bytes) -> Any | None:
        line = line.strip()
        if not line:
            return None
        try:
            return json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self.malformed += 1
            logger.warning("Skipping malformed upstream line (%s): %.200r", e, line)
            return None


def content_of(obj: Any) -> str | None:
    """Text carried by a content-bearing transcript object, else None."""
    if isinstance(obj, dict) and obj.get("type") == CONTENT_TYPE:
        value = obj.get("value")
        if isinstance(value, str) and value:
            return value
    return None
