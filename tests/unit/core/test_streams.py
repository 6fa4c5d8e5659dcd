"""
Tests for chunked line reading from process pipes.
"""

import asyncio
import logging

import pytest

from mcmigrate.core.streams import read_lines


def reader_with(*chunks: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    reader.feed_eof()
    return reader


async def collect(reader, **kwargs):
    return [line async for line in read_lines(reader, **kwargs)]


class TestReadLines:
    @pytest.mark.asyncio
    async def test_splits_on_every_line_break(self):
        reader = reader_with(b"one\ntwo\r\nthree\r 10%\r 20%\nlast")

        assert await collect(reader) == ["one", "two", "three", " 10%", " 20%", "last"]

    @pytest.mark.asyncio
    async def test_lines_spanning_chunks(self):
        reader = reader_with(b"first line\nsecond line\n")

        assert await collect(reader, chunk_bytes=3) == ["first line", "second line"]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert await collect(reader_with()) == []

    @pytest.mark.asyncio
    async def test_oversized_line_is_truncated(self, caplog):
        reader = reader_with(b"x" * 50 + b"\nafter\n")

        with caplog.at_level(logging.WARNING):
            lines = await collect(reader, max_line_bytes=8, chunk_bytes=4)

        assert lines == ["x" * 8, "after"]
        assert "truncated" in caplog.text

    @pytest.mark.asyncio
    async def test_oversized_line_without_break(self):
        reader = reader_with(b"y" * 100)

        assert await collect(reader, max_line_bytes=10, chunk_bytes=16) == ["y" * 10]

    @pytest.mark.asyncio
    async def test_oversized_line_in_one_chunk(self):
        reader = reader_with(b"short\n" + b"z" * 30 + b"\nend")

        assert await collect(reader, max_line_bytes=10) == ["short", "z" * 10, "end"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self):
        reader = reader_with(b"bad \xff byte\n")

        assert await collect(reader) == ["bad � byte"]
