"""
Re-chunker.

Streams arrive in segments of arbitrary size (tar headers, padding, file
reads); the upload needs exact part-sized chunks. RechunkedSource buffers
the incoming segments and cuts them at part boundaries.
"""

from typing import AsyncIterable, AsyncIterator, Optional

from ...core.domain.upload import Chunk
from ...core.exceptions import ProtocolError
from ...core.interfaces.upload import IChunkSource


class RechunkedSource(IChunkSource):
    """
    Re-buffers an async byte stream into chunks of exactly ``part_size``.

    The final chunk may be shorter. The stream must produce exactly
    ``total_bytes`` bytes, otherwise ProtocolError is raised.
    """

    def __init__(self, segments: AsyncIterable[bytes], part_size: int, total_bytes: int) -> None:
        self._iterator: AsyncIterator[bytes] = segments.__aiter__()
        self._part_size = part_size
        self._total = total_bytes
        self._buffer = bytearray()
        self._received = 0
        self._offset = 0
        self._index = 0
        self._exhausted = False
        self._closed = False

    async def _fill(self) -> None:
        while len(self._buffer) < self._part_size and not self._exhausted:
            try:
                segment = await self._iterator.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                break

            self._buffer.extend(segment)
            self._received += len(segment)
            if self._received > self._total:
                raise ProtocolError(
                    f"Stream produced more than the expected {self._total} bytes")

        if self._exhausted and self._received != self._total:
            raise ProtocolError(
                f"Stream ended after {self._received} bytes, expected {self._total}")

    async def next_chunk(self) -> Optional[Chunk]:
        if self._closed:
            return None
        await self._fill()
        if not self._buffer:
            return None

        size = min(self._part_size, len(self._buffer))
        data = bytes(self._buffer[:size])
        del self._buffer[:size]

        start = self._offset
        end = start + size
        self._offset = end
        index = self._index
        self._index += 1

        return Chunk(
            index=index,
            start=start,
            end=end,
            is_last=end == self._total,
            data=data
        )

    async def aclose(self) -> None:
        self._closed = True
        self._buffer.clear()
        close = getattr(self._iterator, "aclose", None)
        if close is not None:
            await close()
