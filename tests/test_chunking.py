"""
Tests for part sizing, the blob slicer and the re-chunker.
"""

import math
from typing import AsyncIterator, List

import pytest

from mpupload.core.domain.upload import Chunk
from mpupload.core.exceptions import InvalidArgumentError, ProtocolError, UploadError
from mpupload.core.interfaces.upload import IChunkSource
from mpupload.infrastructure.chunking import (
    S3_MAX_PARTS, S3_MIN_PART_SIZE, BytesBlob, FileBlob, RechunkedSource,
    get_num_parts, normalize_part_size
)

MiB = 1024 * 1024


async def collect(source: IChunkSource) -> List[Chunk]:
    return [chunk async for chunk in source]


async def stream(*segments: bytes) -> AsyncIterator[bytes]:
    for segment in segments:
        yield segment


class TestNormalizePartSize:
    """Test cases for normalize_part_size."""

    def test_small_request_is_raised_to_minimum(self) -> None:
        assert normalize_part_size(1, 100) == S3_MIN_PART_SIZE
        assert normalize_part_size(1, 0) == S3_MIN_PART_SIZE

    def test_large_request_is_kept(self) -> None:
        assert normalize_part_size(64 * MiB, 100) == 64 * MiB

    def test_one_byte_request_for_large_object(self) -> None:
        total = 1024 ** 3
        part_size = normalize_part_size(1, total)

        assert part_size >= S3_MIN_PART_SIZE
        assert part_size >= math.ceil(total / S3_MAX_PARTS)

    def test_fractional_request_is_rounded_up(self) -> None:
        assert normalize_part_size(5.5 * MiB, 100) == math.ceil(5.5 * MiB)

    def test_part_count_limit_raises_part_size(self) -> None:
        total = S3_MAX_PARTS * S3_MIN_PART_SIZE + 1
        part_size = normalize_part_size(S3_MIN_PART_SIZE, total)

        assert part_size == S3_MIN_PART_SIZE + 1
        assert get_num_parts(total, part_size) <= S3_MAX_PARTS

    def test_huge_object_stays_within_part_limit(self) -> None:
        total = 5 * 1024 ** 4
        part_size = normalize_part_size(S3_MIN_PART_SIZE, total)

        assert part_size >= S3_MIN_PART_SIZE
        assert get_num_parts(total, part_size) <= S3_MAX_PARTS

    @pytest.mark.parametrize("desired", [0, -1, float("nan"), float("inf"), True, "10", None])
    def test_invalid_part_size(self, desired: object) -> None:
        with pytest.raises(InvalidArgumentError):
            normalize_part_size(desired, 100)  # type: ignore[arg-type]

    def test_negative_total(self) -> None:
        with pytest.raises(InvalidArgumentError, match="total_bytes"):
            normalize_part_size(S3_MIN_PART_SIZE, -1)

    def test_invalid_argument_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            normalize_part_size(0, 100)


class TestGetNumParts:
    """Test cases for get_num_parts."""

    def test_empty_object_has_no_parts(self) -> None:
        assert get_num_parts(0, 5 * MiB) == 0

    def test_part_count(self) -> None:
        assert get_num_parts(1, 5 * MiB) == 1
        assert get_num_parts(10 * MiB, 5 * MiB) == 2
        assert get_num_parts(10 * MiB + 1, 5 * MiB) == 3


class TestBytesBlob:
    """Test cases for slicing in-memory blobs."""

    @pytest.mark.asyncio
    async def test_chunks_cover_blob(self) -> None:
        chunks = await collect(BytesBlob(b"abcdefgh").chunks(3))

        assert [c.data for c in chunks] == [b"abc", b"def", b"gh"]
        assert [(c.start, c.end) for c in chunks] == [(0, 3), (3, 6), (6, 8)]
        assert [c.part_number for c in chunks] == [1, 2, 3]
        assert [c.is_last for c in chunks] == [False, False, True]
        assert chunks[-1].size == 2

    @pytest.mark.asyncio
    async def test_exact_multiple(self) -> None:
        chunks = await collect(BytesBlob(b"abcdef").chunks(3))

        assert [c.data for c in chunks] == [b"abc", b"def"]
        assert chunks[-1].is_last

    @pytest.mark.asyncio
    async def test_empty_blob(self) -> None:
        source = BytesBlob(b"").chunks(3)

        assert await source.next_chunk() is None
        assert await source.next_chunk() is None

    @pytest.mark.asyncio
    async def test_bytearray_input(self) -> None:
        blob = BytesBlob(bytearray(b"xyz"))
        chunks = await collect(blob.chunks(2))

        assert blob.size == 3
        assert [c.data for c in chunks] == [b"xy", b"z"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total,part_size", [(1, 1), (1, 7), (100, 7), (4096, 512), (1000, 999)])
    async def test_ranges_are_contiguous(self, total: int, part_size: int) -> None:
        chunks = await collect(BytesBlob(b"z" * total).chunks(part_size))

        assert chunks[0].start == 0
        assert chunks[-1].end == total
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start == previous.end
        assert [c.is_last for c in chunks].count(True) == 1
        assert chunks[-1].is_last

    def test_num_chunks(self) -> None:
        assert BytesBlob(b"a" * 10).chunks(4).num_chunks == 3


class TestFileBlob:
    """Test cases for slicing files."""

    @pytest.mark.asyncio
    async def test_chunks_match_file(self, tmp_path) -> None:
        path = tmp_path / "reads.fastq"
        data = bytes(range(256)) * 40
        path.write_bytes(data)

        blob = FileBlob(path)
        chunks = await collect(blob.chunks(1000))

        assert blob.name == "reads.fastq"
        assert blob.size == len(data)
        assert b"".join(c.data for c in chunks) == data
        assert len(chunks) == 11

    @pytest.mark.asyncio
    async def test_truncated_file(self, tmp_path) -> None:
        path = tmp_path / "reads.fastq"
        path.write_bytes(b"x" * 100)
        blob = FileBlob(path)
        path.write_bytes(b"x" * 10)

        with pytest.raises(UploadError, match="changed while uploading"):
            await collect(blob.chunks(50))

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            FileBlob(tmp_path / "missing.fastq")


class TestRechunkedSource:
    """Test cases for re-buffering a segment stream."""

    @pytest.mark.asyncio
    async def test_exact_part_sizes(self) -> None:
        source = RechunkedSource(stream(b"ab", b"", b"cdefg", b"h"), 3, 8)
        chunks = await collect(source)

        assert [c.data for c in chunks] == [b"abc", b"def", b"gh"]
        assert [(c.start, c.end) for c in chunks] == [(0, 3), (3, 6), (6, 8)]
        assert [c.index for c in chunks] == [0, 1, 2]
        assert [c.is_last for c in chunks] == [False, False, True]

    @pytest.mark.asyncio
    async def test_large_segment_is_split(self) -> None:
        chunks = await collect(RechunkedSource(stream(b"x" * 10), 4, 10))

        assert [c.size for c in chunks] == [4, 4, 2]

    @pytest.mark.asyncio
    async def test_empty_stream(self) -> None:
        assert await collect(RechunkedSource(stream(), 4, 0)) == []

    @pytest.mark.asyncio
    async def test_stream_longer_than_expected(self) -> None:
        with pytest.raises(ProtocolError, match="more than the expected"):
            await collect(RechunkedSource(stream(b"abcdef"), 4, 5))

    @pytest.mark.asyncio
    async def test_stream_shorter_than_expected(self) -> None:
        with pytest.raises(ProtocolError, match="ended after 3 bytes"):
            await collect(RechunkedSource(stream(b"abc"), 4, 5))

    @pytest.mark.asyncio
    async def test_aclose_closes_stream(self) -> None:
        closed = []

        async def segments() -> AsyncIterator[bytes]:
            try:
                yield b"ab"
                yield b"cd"
            finally:
                closed.append(True)

        source = RechunkedSource(segments(), 2, 4)
        first = await source.next_chunk()
        await source.aclose()

        assert first is not None and first.data == b"ab"
        assert closed == [True]
        assert await source.next_chunk() is None
