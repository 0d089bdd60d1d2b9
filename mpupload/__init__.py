"""
mpupload - multipart uploads to S3-compatible storage through a presigned URL broker.

This package splits files, in-memory objects or synthesized sample archives
into parts, uploads them one by one to presigned URLs with retries and
progress reporting, and completes or aborts the remote upload.
"""

__version__ = "0.1.0"

# Public API exports
from .core.domain.upload import ProgressContext, SampleMeta, UploadResult
from .core.exceptions import (
    BrokerRequestError, CompletionError, InvalidArgumentError, PartUploadError,
    ProtocolError, RetriesExhaustedError, UploadError
)
from .infrastructure.chunking import ArchiveSource, BytesBlob, FileBlob, archive_size
from .infrastructure.config.models import UploadConfig
from .infrastructure.services.upload import (
    UploadCoordinator, multi_part_upload, upload_archive, upload_bytes, upload_file
)

__all__ = [
    "ProgressContext",
    "SampleMeta",
    "UploadResult",
    "BrokerRequestError",
    "CompletionError",
    "InvalidArgumentError",
    "PartUploadError",
    "ProtocolError",
    "RetriesExhaustedError",
    "UploadError",
    "ArchiveSource",
    "BytesBlob",
    "FileBlob",
    "archive_size",
    "UploadConfig",
    "UploadCoordinator",
    "multi_part_upload",
    "upload_archive",
    "upload_bytes",
    "upload_file",
]
