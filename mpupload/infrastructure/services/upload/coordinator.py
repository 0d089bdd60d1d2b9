"""
Upload coordinator.

Runs one multipart upload end to end, strictly in sequence:

    initiate -> open -> transfer every part -> complete | abort

Once the remote session exists, every way out other than a successful
completion goes through a best-effort abort so no stored parts are left
behind. Cancellation is not an error: the upload is aborted and the
coordinator returns None.
"""

import os
from typing import List, Optional, Sequence, Union

import aiohttp
from loguru import logger

from ....core.domain.upload import (
    PartUrl, ProgressState, SampleMeta, UploadedPart, UploadResult, UploadSession, UploadStatus
)
from ....core.exceptions import InvalidArgumentError, ProtocolError, UploadCancelled
from ....core.interfaces.upload import IByteSource, IPresignedUrlBroker
from ...chunking.archive import ArchiveSource
from ...chunking.sizing import get_num_parts, normalize_part_size
from ...chunking.slicer import BytesBlob, FileBlob
from ...clients.base import RequestMetrics
from ...clients.broker import PresignedUrlBroker
from ...config.models import UploadConfig
from .transfer import PartUploader


def validate_part_urls(part_urls: Sequence[PartUrl], num_parts: int) -> None:
    """
    Check that the sorted part URLs are exactly parts ``1..num_parts``.

    Raises:
        ProtocolError: On a missing, duplicate or unexpected part number
    """
    if len(part_urls) != num_parts:
        raise ProtocolError(
            f"Expected {num_parts} part URLs, got {len(part_urls)}")

    for i, part_url in enumerate(part_urls):
        expected = i + 1
        if part_url.part_number != expected:
            raise ProtocolError(
                f"Urls not in ascending order or missing numbers; "
                f"found partNumber={part_url.part_number}, expected {expected}")


class UploadCoordinator:
    """
    Multipart upload state machine for a single upload.

    Args:
        config: Upload settings
        session: HTTP session to use; a private one is created and closed
            per upload when omitted
        broker: Broker to use; defaults to the aiohttp broker on
            ``config.endpoint_base``
    """

    def __init__(
        self,
        config: UploadConfig,
        session: Optional[aiohttp.ClientSession] = None,
        broker: Optional[IPresignedUrlBroker] = None
    ):
        self._config = config
        self._session = session
        self._broker = broker
        self._metrics = RequestMetrics()
        self._status = UploadStatus.PENDING
        self._upload: Optional[UploadSession] = None
        self._progress: Optional[ProgressState] = None
        self._parts: List[UploadedPart] = []

    @property
    def status(self) -> UploadStatus:
        return self._status

    def get_info(self) -> dict:
        """Snapshot of the upload for logging and diagnostics."""
        return {
            "status": self._status.value,
            "upload_id": self._upload.upload_id if self._upload else None,
            "bucket": self._config.bucket,
            "key": self._config.key,
            "bytes_sent": self._progress.bytes_sent if self._progress else 0,
            "total_bytes": self._progress.total_bytes if self._progress else None,
            "parts_completed": len(self._parts),
            "requests": self._metrics.to_dict(),
        }

    async def upload(
        self,
        source: IByteSource,
        total_bytes: Optional[int] = None
    ) -> Optional[UploadResult]:
        """
        Upload ``source`` as one object.

        Args:
            source: Byte source to upload
            total_bytes: Exact size of the source; defaults to ``source.size``

        Returns:
            The completed object, or None if the upload was cancelled

        Raises:
            UploadError: If the upload failed; the remote session, if one
                was created, has been aborted
        """
        if self._status is not UploadStatus.PENDING:
            raise InvalidArgumentError("An UploadCoordinator runs a single upload")

        total = source.size if total_bytes is None else total_bytes
        part_size = normalize_part_size(self._config.part_size, total)
        num_parts = get_num_parts(total, part_size)

        if self._session is not None:
            return await self._run(self._session, source, total, part_size, num_parts)

        async with aiohttp.ClientSession() as session:
            return await self._run(session, source, total, part_size, num_parts)

    async def _run(
        self,
        http: aiohttp.ClientSession,
        source: IByteSource,
        total: int,
        part_size: int,
        num_parts: int
    ) -> Optional[UploadResult]:
        broker = self._broker or PresignedUrlBroker(
            self._config.endpoint_base,
            http,
            cancellation_signal=self._config.cancellation_signal,
            request_timeout=self._config.request_timeout,
            abort_timeout=self._config.abort_timeout,
            metrics=self._metrics
        )
        bucket, key = self._config.bucket, self._config.key

        try:
            upload_id = await broker.initiate(bucket, key)
        except UploadCancelled:
            logger.info(f"Upload of {bucket}/{key} cancelled before it was created")
            self._status = UploadStatus.CANCELLED
            return None
        except BaseException:
            self._status = UploadStatus.FAILED
            raise

        upload = UploadSession(upload_id=upload_id, bucket=bucket, key=key, total_bytes=total)
        progress = ProgressState(total_bytes=total)
        self._upload = upload
        self._progress = progress
        self._status = UploadStatus.UPLOADING
        logger.info(
            f"Started multipart upload {upload_id} for {bucket}/{key}: "
            f"{total} bytes in {num_parts} part(s) of {part_size} bytes")

        try:
            result = await self._transfer(http, broker, upload, progress, source, part_size, num_parts)
        except UploadCancelled:
            result = None
        except BaseException as e:
            self._status = UploadStatus.FAILED
            logger.error(f"Multipart upload {upload_id} failed: {e}")
            await self._abort(broker, upload)
            raise

        if result is None:
            self._status = UploadStatus.CANCELLED
            logger.info(f"Multipart upload {upload_id} cancelled after {len(self._parts)} part(s)")
            await self._abort(broker, upload)
            return None

        self._status = UploadStatus.COMPLETED
        logger.info(f"Completed multipart upload {upload_id}: {result.location}")
        return result

    async def _transfer(
        self,
        http: aiohttp.ClientSession,
        broker: IPresignedUrlBroker,
        upload: UploadSession,
        progress: ProgressState,
        source: IByteSource,
        part_size: int,
        num_parts: int
    ) -> Optional[UploadResult]:
        """Open, send every part and complete; None means cancelled."""
        if num_parts == 0:
            # S3 refuses to complete an upload without parts
            raise InvalidArgumentError("Cannot complete a multipart upload without parts")

        part_urls = await broker.open(upload, num_parts)
        validate_part_urls(part_urls, num_parts)

        uploader = PartUploader(http, self._config, progress, num_parts, self._metrics)
        chunks = source.chunks(part_size)
        try:
            async for chunk in chunks:
                if chunk.index >= num_parts:
                    raise ProtocolError(f"Source produced more than {num_parts} parts")

                part = await uploader.upload_part(chunk, part_urls[chunk.index])
                if part is None:
                    return None
                self._parts.append(part)
        finally:
            await chunks.aclose()

        if self._config.cancelled:
            return None
        if len(self._parts) != num_parts:
            raise ProtocolError(f"Source produced {len(self._parts)} of {num_parts} parts")

        return await broker.complete(upload, self._parts)

    async def _abort(self, broker: IPresignedUrlBroker, upload: UploadSession) -> None:
        """Best-effort abort; failures are logged and never raised."""
        try:
            await broker.abort(upload)
        except Exception as e:
            logger.error(f"Failed to abort multipart upload {upload.upload_id}: {e}")
            return
        logger.info(f"Aborted multipart upload {upload.upload_id}")


async def multi_part_upload(
    source: IByteSource,
    config: UploadConfig,
    session: Optional[aiohttp.ClientSession] = None
) -> Optional[UploadResult]:
    """
    Upload a byte source through the multipart protocol.

    Returns:
        The completed object, or None if the caller cancelled the upload
    """
    return await UploadCoordinator(config, session=session).upload(source)


async def upload_bytes(
    data: bytes,
    config: UploadConfig,
    session: Optional[aiohttp.ClientSession] = None
) -> Optional[UploadResult]:
    """Upload an in-memory object."""
    return await multi_part_upload(BytesBlob(data), config, session)


async def upload_file(
    path: Union[str, "os.PathLike[str]"],
    config: UploadConfig,
    session: Optional[aiohttp.ClientSession] = None
) -> Optional[UploadResult]:
    """Upload one file from disk."""
    return await multi_part_upload(FileBlob(path), config, session)


async def upload_archive(
    meta: SampleMeta,
    files: Sequence[Union[str, "os.PathLike[str]"]],
    config: UploadConfig,
    session: Optional[aiohttp.ClientSession] = None
) -> Optional[UploadResult]:
    """Pack ``meta`` and ``files`` into a tar archive and upload it."""
    return await multi_part_upload(ArchiveSource(meta, files), config, session)
