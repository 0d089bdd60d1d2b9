"""
Upload services.

The coordinator that runs a multipart upload and the part transfer loop
it drives.
"""

from .coordinator import (
    UploadCoordinator, multi_part_upload, upload_archive, upload_bytes, upload_file,
    validate_part_urls
)
from .transfer import PartUploader, backoff_delay, classify_attempt

__all__ = [
    "UploadCoordinator",
    "multi_part_upload",
    "upload_archive",
    "upload_bytes",
    "upload_file",
    "validate_part_urls",
    "PartUploader",
    "backoff_delay",
    "classify_attempt",
]
