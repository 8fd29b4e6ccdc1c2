from __future__ import annotations

from collections import deque
from collections.abc import AsyncIterator

import anyio
import structlog
from anyio.abc import ByteReceiveStream
from anyio.streams.text import TextReceiveStream


async def iter_text_lines(stream: ByteReceiveStream) -> AsyncIterator[str]:
    reader = LineReader(stream)
    while True:
        line = await reader.receive_line()
        if line is None:
            return
        yield line


class LineReader:
    """Newline splitter whose buffer survives a cancelled receive.

    Lines keep their trailing newline; a final unterminated fragment is
    returned as-is before EOF is reported as None.
    """

    def __init__(self, stream: ByteReceiveStream) -> None:
        self._stream = TextReceiveStream(stream, errors="replace")
        self._buffer = ""
        self._eof = False

    async def receive_line(self) -> str | None:
        while True:
            split_at = self._buffer.find("\n")
            if split_at >= 0:
                line = self._buffer[: split_at + 1]
                self._buffer = self._buffer[split_at + 1 :]
                return line
            if self._eof:
                if self._buffer:
                    line, self._buffer = self._buffer, ""
                    return line
                return None
            try:
                chunk = await self._stream.receive()
            except (
                anyio.EndOfStream,
                anyio.ClosedResourceError,
                anyio.BrokenResourceError,
            ):
                self._eof = True
                continue
            self._buffer += chunk


async def drain_stderr(
    stream: ByteReceiveStream,
    chunks: deque[str],
    logger: structlog.stdlib.BoundLogger,
    tag: str,
) -> None:
    try:
        async for line in iter_text_lines(stream):
            logger.debug("stderr", tag=tag, line=line.rstrip())
            chunks.append(line)
    except (anyio.BrokenResourceError, OSError) as e:
        logger.debug("stderr.drain_error", tag=tag, error=str(e))
