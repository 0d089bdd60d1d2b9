"""
Domain models for multipart uploads.

Plain dataclasses and enums without external dependencies.
"""

from .upload import (
    AttemptOutcome, AttemptResult, Chunk, PartUrl, ProgressContext, ProgressState,
    SampleMeta, UploadedPart, UploadResult, UploadSession, UploadStatus
)

__all__ = [
    "AttemptOutcome",
    "AttemptResult",
    "Chunk",
    "PartUrl",
    "ProgressContext",
    "ProgressState",
    "SampleMeta",
    "UploadedPart",
    "UploadResult",
    "UploadSession",
    "UploadStatus",
]
