"""
Line reading from child process pipes.

``StreamReader.readline`` raises once a line outgrows the reader's buffer
limit, and progress bars redrawn with carriage returns never send a newline
at all. ``read_lines`` reads fixed-size chunks instead, treats ``\\r`` as a
line break, and cuts any line longer than ``max_line_bytes``: the first
``max_line_bytes`` are yielded and the rest is dropped up to the next break.
"""

import asyncio
import re
from collections.abc import AsyncIterator

from mcmigrate.core.logger import get_logger

logger = get_logger(__name__)

MAX_LINE_BYTES = 64 * 1024
CHUNK_BYTES = 64 * 1024

_LINE_BREAK = re.compile(rb"\r\n|\r|\n")


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


async def read_lines(
    stream: asyncio.StreamReader,
    max_line_bytes: int = MAX_LINE_BYTES,
    chunk_bytes: int = CHUNK_BYTES,
) -> AsyncIterator[str]:
    """Yield decoded lines from ``stream`` until EOF, without line breaks."""
    buffer = b""
    truncating = False

    while chunk := await stream.read(chunk_bytes):
        buffer += chunk

        start = 0
        for match in _LINE_BREAK.finditer(buffer):
            line = buffer[start:match.start()]
            start = match.end()
            if truncating:
                truncating = False
                continue
            yield _decode(line[:max_line_bytes])
        buffer = buffer[start:]

        if len(buffer) > max_line_bytes:
            if not truncating:
                logger.warning(f"Output line longer than {max_line_bytes} bytes; truncated")
                yield _decode(buffer[:max_line_bytes])
                truncating = True
            buffer = b""

    if buffer and not truncating:
        yield _decode(buffer)
