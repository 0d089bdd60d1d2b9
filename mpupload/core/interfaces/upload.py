"""
Upload interfaces.

This module defines the contracts between the upload coordinator and its
collaborators: the byte sources that are split into parts, the chunk
sources that hand those parts out one at a time, and the broker that
issues presigned part URLs.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..domain.upload import Chunk, PartUrl, ProgressContext, UploadedPart, UploadResult, UploadSession


ProgressSink = Callable[[int, int, ProgressContext], None]
"""Called as ``sink(bytes_sent, total_bytes, context)`` from the transfer loop."""


class IChunkSource(ABC):
    """
    Forward-only sequence of chunks covering a source exactly once.

    A chunk source cannot be rewound; ask the owning byte source for a new
    one to start over.
    """

    @abstractmethod
    async def next_chunk(self) -> Optional[Chunk]:
        """
        Produce the next chunk.

        Returns:
            The next chunk, or None once the source is exhausted
        """
        pass

    async def aclose(self) -> None:
        """Release whatever the source holds open; safe to call twice."""
        pass

    def __aiter__(self) -> "IChunkSource":
        return self

    async def __anext__(self) -> Chunk:
        chunk = await self.next_chunk()
        if chunk is None:
            raise StopAsyncIteration
        return chunk


class IByteSource(ABC):
    """An uploadable object of known size."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Exact number of bytes the source will produce."""
        pass

    @abstractmethod
    def chunks(self, part_size: int) -> IChunkSource:
        """Start a new pass over the source in chunks of ``part_size``."""
        pass


class IPresignedUrlBroker(ABC):
    """Backend that brokers the multipart upload session."""

    @abstractmethod
    async def initiate(self, bucket: str, key: str) -> str:
        """Create a multipart upload and return its upload id."""
        pass

    @abstractmethod
    async def open(self, session: UploadSession, num_parts: int) -> List[PartUrl]:
        """Fetch one presigned URL per part, sorted by part number."""
        pass

    @abstractmethod
    async def complete(self, session: UploadSession, parts: List[UploadedPart]) -> UploadResult:
        """Finalize the upload from the ordered list of stored parts."""
        pass

    @abstractmethod
    async def abort(self, session: UploadSession) -> None:
        """Discard the upload and release the stored parts."""
        pass
