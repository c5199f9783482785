"""core.line_reader

Buffered line framing for streaming HTTP bodies.

Backends deliver streamed output as newline-delimited JSON (Ollama) or as
SSE ``data:`` lines (Gemini). Transport reads do not respect line
boundaries, so bytes are accumulated until a full line is available. A
multi-byte UTF-8 sequence split across two reads is decoded correctly.

Unparsable lines are *skipped*, not fatal: one garbled object must not
discard an otherwise healthy stream. Each skip is logged at WARNING level.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

_log = logging.getLogger(__name__)

_SSE_DATA_PREFIX = 'data:'


class LineBuffer:
    """Accumulate decoded text and hand out complete lines."""

    def __init__(self, encoding: str = 'utf-8') -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors='replace')
        self._pending = ''

    def feed(self, data: bytes) -> list[str]:
        """Add *data* and return every line it completed (without newline)."""
        self._pending += self._decoder.decode(data)
        *lines, self._pending = self._pending.split('\n')
        return [line.rstrip('\r') for line in lines]

    def flush(self) -> str | None:
        """Return the trailing unterminated line, if any, and reset."""
        self._pending += self._decoder.decode(b'', final=True)
        tail, self._pending = self._pending.rstrip('\r'), ''
        return tail or None


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield non-blank lines from a byte stream, including a trailing partial line."""
    buffer = LineBuffer()
    async for chunk in chunks:
        for line in buffer.feed(chunk):
            if line.strip():
                yield line
    tail = buffer.flush()
    if tail and tail.strip():
        yield tail


def parse_json_line(line: str) -> dict[str, Any] | None:
    """Decode one JSON object line; return ``None`` (and log) if it is unusable."""
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        _log.warning('Skipping unparsable stream line: %.200r', line)
        return None
    if not isinstance(obj, dict):
        _log.warning('Skipping non-object stream line: %.200r', line)
        return None
    return obj


async def iter_ndjson(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Yield JSON objects from a newline-delimited JSON byte stream."""
    async for line in iter_lines(chunks):
        obj = parse_json_line(line)
        if obj is not None:
            yield obj


async def iter_sse_json(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Yield JSON payloads of SSE ``data:`` lines; other SSE fields are ignored."""
    async for line in iter_lines(chunks):
        if not line.startswith(_SSE_DATA_PREFIX):
            continue
        data = line[len(_SSE_DATA_PREFIX):].strip()
        if not data or data == '[DONE]':
            continue
        obj = parse_json_line(data)
        if obj is not None:
            yield obj
