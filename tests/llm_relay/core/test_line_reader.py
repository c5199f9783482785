from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from llm_relay.core.line_reader import LineBuffer, iter_lines, iter_ndjson, iter_sse_json

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


async def _chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


def test_line_buffer_joins_partial_reads() -> None:
    buf = LineBuffer()
    assert buf.feed(b'{"a":') == []
    assert buf.feed(b' 1}\n{"b"') == ['{"a": 1}']
    assert buf.feed(b': 2}\r\n') == ['{"b": 2}']
    assert buf.flush() is None


def test_line_buffer_handles_split_multibyte_character() -> None:
    buf = LineBuffer()
    encoded = 'héllo\n'.encode()
    assert buf.feed(encoded[:2]) == []
    assert buf.feed(encoded[2:]) == ['héllo']


@pytest.mark.asyncio
async def test_iter_lines_yields_trailing_partial_line() -> None:
    lines = [line async for line in iter_lines(_chunks(b'one\n\n tw', b'o\nthree'))]
    assert lines == ['one', ' two', 'three']


@pytest.mark.asyncio
async def test_iter_ndjson_skips_garbled_lines(caplog: pytest.LogCaptureFixture) -> None:
    stream = _chunks(b'{"n": 1}\n{"n": 2\n[1, 2]\n', b'{"n": 3}\n{"n": ')
    objects = [obj async for obj in iter_ndjson(stream)]
    assert objects == [{'n': 1}, {'n': 3}]
    assert 'unparsable' in caplog.text


@pytest.mark.asyncio
async def test_iter_sse_json_reads_data_lines_only() -> None:
    stream = _chunks(b'event: message\ndata: {"x": 1}\n\n: comment\n', b'data: [DONE]\ndata: {"x": 2}\n\n')
    events = [event async for event in iter_sse_json(stream)]
    assert events == [{'x': 1}, {'x': 2}]
