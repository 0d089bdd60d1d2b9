"""
S3 multipart XML documents.

Builds the CompleteMultipartUpload manifest and reads the
InitiateMultipartUploadResult / CompleteMultipartUploadResult answers.
Element names are matched without their namespace since S3-compatible
backends differ on whether they declare one.
"""

import xml.etree.ElementTree as ET
from typing import Dict, Optional, Sequence
from xml.sax.saxutils import escape

from ...core.domain.upload import UploadedPart, UploadResult
from ...core.exceptions import InvalidArgumentError, ProtocolError

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def ensure_quoted(tag: str) -> str:
    """Return the entity tag wrapped in exactly one pair of double quotes."""
    t = tag.strip()
    if len(t) >= 2 and t.startswith('"') and t.endswith('"'):
        return t
    return f'"{t.strip(chr(34))}"'


def build_completion_xml(parts: Sequence[UploadedPart]) -> str:
    """
    Build the CompleteMultipartUpload body.

    Args:
        parts: Stored parts in ascending part-number order

    Returns:
        The XML document as a string

    Raises:
        InvalidArgumentError: If ``parts`` is empty
    """
    if not parts:
        raise InvalidArgumentError("Cannot complete a multipart upload without parts")

    items = "".join(
        f"<Part><PartNumber>{part.part_number}</PartNumber>"
        f"<ETag>{escape(ensure_quoted(part.etag))}</ETag></Part>"
        for part in parts
    )
    return (
        f'{XML_DECLARATION}'
        f'<CompleteMultipartUpload xmlns="{S3_NAMESPACE}">{items}</CompleteMultipartUpload>'
    )


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse_result(text: str, root_name: str) -> Dict[str, Optional[str]]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ProtocolError(f"Malformed XML ({e}): {text[:200]}")

    if _local_name(root.tag) != root_name:
        raise ProtocolError(f"Expected {root_name}, got {_local_name(root.tag)}: {text[:200]}")

    return {
        _local_name(child.tag): (child.text or "").strip() or None
        for child in root
    }


def parse_initiate_result(text: str) -> str:
    """Extract the UploadId from an InitiateMultipartUploadResult document."""
    fields = _parse_result(text, "InitiateMultipartUploadResult")
    upload_id = fields.get("UploadId")
    if not upload_id:
        raise ProtocolError(f"Unexpected XML from MPU create: {text[:200]}...")
    return upload_id


def parse_complete_result(text: str) -> UploadResult:
    """Read a CompleteMultipartUploadResult document."""
    fields = _parse_result(text, "CompleteMultipartUploadResult")
    return UploadResult(
        location=fields.get("Location"),
        bucket=fields.get("Bucket"),
        key=fields.get("Key"),
        etag=fields.get("ETag"),
        checksum=fields.get("ChecksumCRC64NVME"),
        checksum_type=fields.get("ChecksumType")
    )
