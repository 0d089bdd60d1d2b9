"""
Domain model for multipart uploads.

These dataclasses describe one upload session end to end: the remote
session itself, the presigned part URLs, the chunks carved out of the
source, the parts already stored and the progress reported to callers.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class UploadStatus(Enum):
    """Upload status enumeration."""
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class AttemptOutcome(Enum):
    """Classification of a single part PUT attempt."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class UploadSession:
    """Remote multipart upload session."""
    upload_id: str
    bucket: str
    key: str
    total_bytes: int


@dataclass(frozen=True)
class PartUrl:
    """Presigned URL for one part."""
    part_number: int
    url: str


@dataclass
class Chunk:
    """
    One contiguous byte range of the source.

    ``start`` is inclusive and ``end`` exclusive; ``index`` is 0-based so
    the matching part number is ``index + 1``.
    """
    index: int
    start: int
    end: int
    is_last: bool
    data: bytes

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def part_number(self) -> int:
        return self.index + 1


@dataclass(frozen=True)
class UploadedPart:
    """A part stored by the backend, referenced by its entity tag."""
    part_number: int
    etag: str


@dataclass(frozen=True)
class ProgressContext:
    """Extra information handed to the progress sink."""
    part_number: int
    num_parts: int
    part_size: int
    attempt: int


@dataclass
class ProgressState:
    """
    Progress accounting for one upload.

    ``per_part_loaded`` restarts at zero with every attempt, while
    ``part_high_water`` only restarts with a new part, so bytes re-sent by
    a retry are never counted twice in ``bytes_sent``.
    """
    total_bytes: int
    bytes_sent: int = 0
    per_part_loaded: int = 0
    part_high_water: int = 0

    def start_part(self) -> None:
        self.per_part_loaded = 0
        self.part_high_water = 0

    def start_attempt(self) -> None:
        self.per_part_loaded = 0

    def advance(self, loaded: int) -> int:
        """
        Record the bytes acknowledged so far in the current attempt.

        Args:
            loaded: Monotonic byte counter of the current attempt

        Returns:
            Number of bytes newly added to ``bytes_sent`` (may be 0)
        """
        if loaded > self.per_part_loaded:
            self.per_part_loaded = loaded
        delta = self.per_part_loaded - self.part_high_water
        if delta <= 0:
            return 0
        self.part_high_water += delta
        self.bytes_sent += delta
        return delta


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of one PUT attempt with the details needed to report it."""
    outcome: AttemptOutcome
    status: Optional[int] = None
    etag: Optional[str] = None
    detail: str = ""


@dataclass(frozen=True)
class UploadResult:
    """Result returned by the completion endpoint."""
    location: Optional[str]
    bucket: Optional[str]
    key: Optional[str]
    etag: Optional[str]
    checksum: Optional[str] = None
    checksum_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "bucket": self.bucket,
            "key": self.key,
            "etag": self.etag,
            "checksum": self.checksum,
            "checksum_type": self.checksum_type,
        }


@dataclass
class SampleMeta:
    """Sample metadata stored as ``meta.json`` at the head of an archive."""
    sample_id: str
    sample_type: str
    sample_matrix: str
    sample_collection_date: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_json_bytes(self) -> bytes:
        """Serialize with the camelCase keys the pipeline expects."""
        payload: Dict[str, Any] = {
            "sampleId": self.sample_id,
            "sampleType": self.sample_type,
            "sampleMatrix": self.sample_matrix,
            "sampleCollectionDate": self.sample_collection_date,
        }
        payload.update(self.extra)
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")
