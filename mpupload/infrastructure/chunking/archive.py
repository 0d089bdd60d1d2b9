"""
Streaming tar archive packer.

A sample upload is a single tar archive holding ``meta.json`` followed by
every sequencing file under ``sequencing/``. The archive is produced as a
stream of segments so no file is ever loaded whole, and its exact size is
computed up front because the part count depends on it.

Each entry is one 512-byte ustar header plus the content padded to a
512-byte boundary; the archive ends with two zero blocks and carries no
further record padding.
"""

import os
import tarfile
import time
from typing import AsyncIterator, List, Optional, Sequence, Tuple, Union

import aiofiles

from ...core.domain.upload import SampleMeta
from ...core.exceptions import InvalidArgumentError, UploadError
from ...core.interfaces.upload import IByteSource, IChunkSource
from .rechunk import RechunkedSource

TAR_BLOCK_SIZE = 512
META_ENTRY_NAME = "meta.json"
FILE_ENTRY_PREFIX = "sequencing/"
FILE_MODE = 0o644
READ_SIZE = 1024 * 1024

PathType = Union[str, "os.PathLike[str]"]


def _padded(num_bytes: int) -> int:
    return -(-num_bytes // TAR_BLOCK_SIZE) * TAR_BLOCK_SIZE


def archive_size(meta: SampleMeta, files: Sequence[PathType]) -> int:
    """
    Exact size of the archive ``pack_archive`` produces for these inputs.

    Args:
        meta: Sample metadata
        files: Paths of the files to include

    Returns:
        Archive size in bytes
    """
    num_bytes = TAR_BLOCK_SIZE + _padded(len(meta.to_json_bytes()))

    for path in files:
        num_bytes += TAR_BLOCK_SIZE + _padded(os.path.getsize(path))

    # Two final blocks
    num_bytes += 2 * TAR_BLOCK_SIZE
    return num_bytes


def _header(name: str, size: int, mtime: int) -> bytes:
    info = tarfile.TarInfo(name)
    info.size = size
    info.mode = FILE_MODE
    info.mtime = mtime
    info.type = tarfile.REGTYPE
    try:
        return info.tobuf(format=tarfile.USTAR_FORMAT, encoding="utf-8", errors="strict")
    except ValueError as e:
        raise InvalidArgumentError(f"Cannot store {name!r} in the archive: {e}")


def _padding(num_bytes: int) -> bytes:
    return b"\0" * (_padded(num_bytes) - num_bytes)


async def _file_segments(path: str, size: int) -> AsyncIterator[bytes]:
    remaining = size
    async with aiofiles.open(path, "rb") as f:
        while remaining > 0:
            data = await f.read(min(READ_SIZE, remaining))
            if not data:
                raise UploadError(f"{path} shrank while archiving: {remaining} bytes missing")
            remaining -= len(data)
            yield data

        if await f.read(1):
            raise UploadError(f"{path} grew while archiving: expected {size} bytes")


class ArchiveSource(IByteSource):
    """
    Tar archive of one metadata record and a list of files.

    File sizes are captured when the source is created; entry headers are
    built at the same time so an invalid name fails before any upload.
    """

    def __init__(
        self,
        meta: SampleMeta,
        files: Sequence[PathType],
        mtime: Optional[int] = None
    ) -> None:
        self.meta = meta
        self._meta_bytes = meta.to_json_bytes()
        self._mtime = int(time.time()) if mtime is None else mtime
        self._files: List[Tuple[str, int, bytes]] = []

        names = set()
        for path in files:
            path = os.fspath(path)
            name = FILE_ENTRY_PREFIX + os.path.basename(path)
            if name in names:
                raise InvalidArgumentError(f"Duplicate archive entry {name!r}")
            names.add(name)

            size = os.path.getsize(path)
            self._files.append((path, size, _header(name, size, self._mtime)))

        self._meta_header = _header(META_ENTRY_NAME, len(self._meta_bytes), self._mtime)
        self._size = archive_size(meta, [path for path, _, _ in self._files])

    @property
    def size(self) -> int:
        return self._size

    async def segments(self) -> AsyncIterator[bytes]:
        """Yield the archive in the order the bytes appear."""
        yield self._meta_header
        yield self._meta_bytes + _padding(len(self._meta_bytes))

        for path, size, header in self._files:
            yield header
            async for data in _file_segments(path, size):
                yield data
            padding = _padding(size)
            if padding:
                yield padding

        yield b"\0" * (2 * TAR_BLOCK_SIZE)

    def chunks(self, part_size: int) -> IChunkSource:
        return RechunkedSource(self.segments(), part_size, self._size)


async def pack_archive(
    meta: SampleMeta,
    files: Sequence[PathType],
    mtime: Optional[int] = None
) -> AsyncIterator[bytes]:
    """Stream the tar archive for ``meta`` and ``files`` segment by segment."""
    async for segment in ArchiveSource(meta, files, mtime).segments():
        yield segment
