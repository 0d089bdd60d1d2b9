"""
Chunk sources.

Byte sources split into ordered, part-sized chunks: a slicer for
random-access blobs and a re-chunked tar stream for sample archives.
"""

from .archive import ArchiveSource, archive_size, pack_archive
from .rechunk import RechunkedSource
from .sizing import S3_MAX_PARTS, S3_MIN_PART_SIZE, get_num_parts, normalize_part_size
from .slicer import BlobChunkSource, BytesBlob, FileBlob

__all__ = [
    "ArchiveSource",
    "archive_size",
    "pack_archive",
    "RechunkedSource",
    "S3_MAX_PARTS",
    "S3_MIN_PART_SIZE",
    "get_num_parts",
    "normalize_part_size",
    "BlobChunkSource",
    "BytesBlob",
    "FileBlob",
]
