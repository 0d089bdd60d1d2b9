"""
Blob slicer.

Random-access sources of known size (in-memory bytes or a file on disk)
are cut into part-sized chunks by direct slicing.
"""

import os
from abc import abstractmethod
from typing import Optional, Union

import aiofiles

from ...core.domain.upload import Chunk
from ...core.exceptions import UploadError
from ...core.interfaces.upload import IByteSource, IChunkSource
from .sizing import get_num_parts


class RandomAccessBlob(IByteSource):
    """Byte source that can read any range on demand."""

    @abstractmethod
    async def read_range(self, start: int, end: int) -> bytes:
        """Read bytes ``[start, end)``."""
        pass

    def chunks(self, part_size: int) -> IChunkSource:
        return BlobChunkSource(self, part_size)


class BytesBlob(RandomAccessBlob):
    """In-memory blob."""

    def __init__(self, data: Union[bytes, bytearray, memoryview]) -> None:
        self._data = memoryview(data).cast("B") if not isinstance(data, bytes) else data

    @property
    def size(self) -> int:
        return len(self._data)

    async def read_range(self, start: int, end: int) -> bytes:
        return bytes(self._data[start:end])


class FileBlob(RandomAccessBlob):
    """File on disk; the size is taken when the blob is created."""

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self.path = os.fspath(path)
        self._size = os.path.getsize(self.path)

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def size(self) -> int:
        return self._size

    async def read_range(self, start: int, end: int) -> bytes:
        async with aiofiles.open(self.path, "rb") as f:
            await f.seek(start)
            data = await f.read(end - start)

        if len(data) != end - start:
            raise UploadError(
                f"{self.path} changed while uploading: expected {end - start} bytes "
                f"at offset {start}, read {len(data)}")
        return data


class BlobChunkSource(IChunkSource):
    """Yields ``ceil(size / part_size)`` chunks of a random-access blob."""

    def __init__(self, blob: RandomAccessBlob, part_size: int) -> None:
        self._blob = blob
        self._part_size = part_size
        self._total = blob.size
        self._num_chunks = get_num_parts(self._total, part_size)
        self._index = 0

    @property
    def num_chunks(self) -> int:
        return self._num_chunks

    async def next_chunk(self) -> Optional[Chunk]:
        if self._index >= self._num_chunks:
            return None

        index = self._index
        start = index * self._part_size
        end = min(start + self._part_size, self._total)
        data = await self._blob.read_range(start, end)
        self._index += 1

        return Chunk(
            index=index,
            start=start,
            end=end,
            is_last=end == self._total,
            data=data
        )
