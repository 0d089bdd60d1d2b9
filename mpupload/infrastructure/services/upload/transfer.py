"""
Part transfer.

Each part is PUT to its presigned URL in a single retry loop. Every
attempt is reduced to one AttemptResult by ``classify_attempt``; the loop
only decides between returning, retrying after a backoff, and raising.
At most ``num_retries`` extra attempts follow the first one.
"""

import asyncio
import random
import time
from typing import AsyncIterator, Callable, Optional

import aiohttp
from loguru import logger
from yarl import URL

from ....core.domain.upload import (
    AttemptOutcome, AttemptResult, Chunk, PartUrl, ProgressContext, ProgressState, UploadedPart
)
from ....core.exceptions import PartUploadError, RetriesExhaustedError, UploadCancelled
from ....core.interfaces.upload import ProgressSink
from ...clients.base import RequestMetrics, cancellable_sleep, run_cancellable, snippet
from ...config.models import UploadConfig

RETRYABLE_STATUSES = frozenset({408, 429})


def is_retryable_status(status: int) -> bool:
    return status >= 500 or status in RETRYABLE_STATUSES


def classify_attempt(
    status: Optional[int],
    etag: Optional[str],
    transport_error: Optional[BaseException] = None,
    body: str = ""
) -> AttemptResult:
    """
    Classify the outcome of one PUT attempt.

    Args:
        status: HTTP status, None when no response arrived
        etag: Entity tag header of the response, if any
        transport_error: Error raised before a response arrived
        body: Response body, used for the error detail

    Returns:
        SUCCESS for a 2xx carrying an entity tag, RETRYABLE for transport
        failures, 408, 429 and 5xx, FATAL for everything else
    """
    if status is None:
        return AttemptResult(
            outcome=AttemptOutcome.RETRYABLE,
            detail=f"network error: {transport_error!r}"
        )

    if 200 <= status < 300:
        if etag:
            return AttemptResult(outcome=AttemptOutcome.SUCCESS, status=status, etag=etag)
        return AttemptResult(
            outcome=AttemptOutcome.FATAL,
            status=status,
            detail="missing etag in response headers"
        )

    outcome = AttemptOutcome.RETRYABLE if is_retryable_status(status) else AttemptOutcome.FATAL
    return AttemptResult(outcome=outcome, status=status, detail=f"{status} - {snippet(body)}")


def backoff_delay(
    attempt: int,
    base_delay: float = 0.3,
    jitter: float = 0.1,
    rand: Callable[[float, float], float] = random.uniform
) -> float:
    """Seconds to wait after ``attempt`` failed: exponential plus random jitter."""
    return base_delay * (2 ** (attempt - 1)) + rand(0, jitter)


class PartUploader:
    """
    Uploads parts one at a time and keeps the session progress.

    One instance serves one upload; it is not shared between uploads.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: UploadConfig,
        progress: ProgressState,
        num_parts: int,
        metrics: Optional[RequestMetrics] = None
    ):
        self._session = session
        self._config = config
        self._progress = progress
        self._num_parts = num_parts
        self._signal = config.cancellation_signal
        self._sink: Optional[ProgressSink] = config.progress_sink
        self._metrics = metrics or RequestMetrics()
        self._sink_error: Optional[Exception] = None

    async def upload_part(self, chunk: Chunk, part_url: PartUrl) -> Optional[UploadedPart]:
        """
        Upload one chunk with retries.

        Args:
            chunk: Chunk to send
            part_url: Presigned URL for the chunk's part number

        Returns:
            The stored part, or None if the upload was cancelled

        Raises:
            PartUploadError: On a non-retryable failure
            RetriesExhaustedError: When every allowed attempt failed
            Exception: Whatever the progress sink raised, unretried
        """
        part_number = part_url.part_number
        self._progress.start_part()
        attempt = 0

        while True:
            if self._config.cancelled:
                logger.info(f"Part {part_number}: cancelled before attempt {attempt + 1}")
                return None

            attempt += 1
            self._progress.start_attempt()
            try:
                result = await run_cancellable(
                    self._attempt(chunk, part_url, attempt), self._signal)
            except UploadCancelled:
                logger.info(f"Part {part_number}: cancelled during attempt {attempt}")
                return None

            if result.outcome is AttemptOutcome.SUCCESS:
                logger.debug(f"Part {part_number}/{self._num_parts} stored, etag {result.etag}")
                return UploadedPart(part_number=part_number, etag=result.etag or "")

            if result.outcome is AttemptOutcome.FATAL:
                raise PartUploadError(
                    f"Part {part_number} upload failed after {attempt} attempt(s): {result.detail}",
                    part_number=part_number, attempts=attempt, status=result.status)

            if attempt > self._config.num_retries:
                raise RetriesExhaustedError(
                    f"Part {part_number} upload failed after {attempt} attempt(s): {result.detail}",
                    part_number=part_number, attempts=attempt, status=result.status)

            delay = backoff_delay(attempt, self._config.base_delay, self._config.jitter)
            logger.warning(
                f"Part {part_number} attempt {attempt} failed ({result.detail}), "
                f"retrying in {delay:.2f}s")
            if await cancellable_sleep(delay, self._signal):
                logger.info(f"Part {part_number}: cancelled during backoff")
                return None

    async def _attempt(self, chunk: Chunk, part_url: PartUrl, attempt: int) -> AttemptResult:
        context = ProgressContext(
            part_number=part_url.part_number,
            num_parts=self._num_parts,
            part_size=chunk.size,
            attempt=attempt
        )
        kwargs = {}
        if self._config.request_timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self._config.request_timeout)

        self._sink_error = None
        start = time.monotonic()
        try:
            async with self._session.put(
                URL(part_url.url, encoded=True),
                data=self._body(chunk.data, context),
                headers={"Content-Length": str(len(chunk.data))},
                **kwargs
            ) as resp:
                etag = resp.headers.get("ETag")
                body = "" if 200 <= resp.status < 300 else await resp.text(errors="replace")
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if self._sink_error is not None:
                raise self._sink_error from None
            self._metrics.record_request(False, time.monotonic() - start)
            self._metrics.record_error(str(e))
            return classify_attempt(None, None, transport_error=e)

        if self._sink_error is not None:
            raise self._sink_error

        result = classify_attempt(status, etag, body=body)
        self._metrics.record_request(result.outcome is AttemptOutcome.SUCCESS, time.monotonic() - start)
        if result.outcome is not AttemptOutcome.SUCCESS:
            self._metrics.record_error(result.detail)
        return result

    async def _body(self, data: bytes, context: ProgressContext) -> AsyncIterator[bytes]:
        """Stream ``data`` in slices, reporting progress once each slice is written."""
        view = memoryview(data)
        step = self._config.progress_granularity
        for offset in range(0, len(data), step):
            end = min(offset + step, len(data))
            yield bytes(view[offset:end])
            self._report(end, context)

    def _report(self, loaded: int, context: ProgressContext) -> None:
        if self._progress.advance(loaded) > 0 and self._sink is not None:
            try:
                self._sink(self._progress.bytes_sent, self._progress.total_bytes, context)
            except Exception as e:
                # Re-raised by _attempt once aiohttp gives up on the request
                self._sink_error = e
                raise
