"""
Core module containing the upload domain model, interfaces and errors.

This module is independent of the HTTP client, the file system and the
configuration layer.
"""

from .domain.upload import (
    Chunk, PartUrl, ProgressContext, SampleMeta, UploadedPart, UploadResult,
    UploadSession, UploadStatus
)
from .interfaces.upload import IByteSource, IChunkSource, IPresignedUrlBroker, ProgressSink
from .exceptions import (
    BrokerRequestError, CompletionError, InvalidArgumentError, PartUploadError,
    ProtocolError, RetriesExhaustedError, UploadError
)

__all__ = [
    "Chunk",
    "PartUrl",
    "ProgressContext",
    "SampleMeta",
    "UploadedPart",
    "UploadResult",
    "UploadSession",
    "UploadStatus",
    "IByteSource",
    "IChunkSource",
    "IPresignedUrlBroker",
    "ProgressSink",
    "BrokerRequestError",
    "CompletionError",
    "InvalidArgumentError",
    "PartUploadError",
    "ProtocolError",
    "RetriesExhaustedError",
    "UploadError",
]
