"""
Presigned URL broker client.

The backend fronts the object store and exposes the multipart upload
protocol under ``<base>/objstorage/``:

- ``POST creatempu``   creates the upload and answers with its UploadId
- ``GET parturls``     answers with one presigned PUT URL per part
- ``POST completempu`` finalizes the upload from the part manifest
- ``DELETE abortmpu``  discards the upload and its stored parts
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from loguru import logger

from ...core.domain.upload import PartUrl, UploadedPart, UploadResult, UploadSession
from ...core.exceptions import BrokerRequestError, CompletionError, ProtocolError
from ...core.interfaces.upload import IPresignedUrlBroker
from .base import RequestMetrics, run_cancellable, snippet
from .xml import build_completion_xml, parse_complete_result, parse_initiate_result

COMPLETION_SNIPPET_LENGTH = 400


def _coerce_part_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_part_urls(data: Any) -> List[PartUrl]:
    """
    Validate the ``parturls`` payload and sort it by part number.

    Args:
        data: Decoded JSON body

    Returns:
        Part URLs in ascending part-number order

    Raises:
        ProtocolError: If the payload is not a list of
            ``{partNumber, url}`` objects with positive part numbers
    """
    if not isinstance(data, list):
        raise ProtocolError(f"Unexpected response: expected array, got {type(data).__name__}")

    items = []
    for item in data:
        part_number = _coerce_part_number(item.get("partNumber")) if isinstance(item, dict) else None
        url = item.get("url") if isinstance(item, dict) else None
        if part_number is None or part_number <= 0 or not isinstance(url, str):
            raise ProtocolError(f"Invalid item in response: {json.dumps(item, default=str)}")
        items.append(PartUrl(part_number=part_number, url=url))

    items.sort(key=lambda item: item.part_number)
    return items


class PresignedUrlBroker(IPresignedUrlBroker):
    """aiohttp client for the backend's multipart upload endpoints."""

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession,
        cancellation_signal: Optional[asyncio.Event] = None,
        request_timeout: Optional[float] = None,
        abort_timeout: float = 15.0,
        metrics: Optional[RequestMetrics] = None
    ):
        """
        Initialize the broker client.

        Args:
            base_url: Backend base URL, without the ``/objstorage`` suffix
            session: HTTP session owned by the caller
            cancellation_signal: Event that cancels in-flight requests
            request_timeout: Total timeout per request, None for the session default
            abort_timeout: Total timeout for the abort request
            metrics: Shared request metrics
        """
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._signal = cancellation_signal
        self._request_timeout = request_timeout
        self._abort_timeout = abort_timeout
        self._metrics = metrics or RequestMetrics()

    @property
    def metrics(self) -> RequestMetrics:
        return self._metrics

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/objstorage/{endpoint}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Dict[str, Any],
        data: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        cancellable: bool = True
    ) -> Tuple[int, str]:
        kwargs: Dict[str, Any] = {"params": params}
        if data is not None:
            kwargs["data"] = data
        if headers:
            kwargs["headers"] = headers
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)

        async def send() -> Tuple[int, str]:
            async with self._session.request(method, self._url(endpoint), **kwargs) as resp:
                return resp.status, await resp.text()

        start = time.monotonic()
        try:
            if cancellable:
                status, text = await run_cancellable(send(), self._signal)
            else:
                status, text = await send()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._metrics.record_request(False, time.monotonic() - start)
            self._metrics.record_error(str(e))
            raise BrokerRequestError(f"{method} {endpoint} failed: {e!r}") from e

        self._metrics.record_request(200 <= status < 300, time.monotonic() - start)
        return status, text

    async def initiate(self, bucket: str, key: str) -> str:
        """Create a multipart upload and return its UploadId."""
        status, text = await self._request(
            "POST", "creatempu",
            params={"bucket": bucket, "key": key},
            timeout=self._request_timeout
        )
        if not 200 <= status < 300:
            raise BrokerRequestError(
                f"Create MPU failed: {status} - {snippet(text)}", status=status, body=text)

        upload_id = parse_initiate_result(text)
        logger.debug(f"Created multipart upload {upload_id} for {bucket}/{key}")
        return upload_id

    async def open(self, session: UploadSession, num_parts: int) -> List[PartUrl]:
        """Fetch the presigned part URLs, sorted by part number."""
        status, text = await self._request(
            "GET", "parturls",
            params={
                "bucket": session.bucket,
                "key": session.key,
                "uploadId": session.upload_id,
                "numParts": num_parts,
            },
            timeout=self._request_timeout
        )
        if not 200 <= status < 300:
            raise BrokerRequestError(
                f"Part URL request failed: {status} - {snippet(text)}", status=status, body=text)

        try:
            data = json.loads(text)
        except ValueError as e:
            raise ProtocolError(f"Malformed JSON from part URL request ({e}): {snippet(text)}")

        return parse_part_urls(data)

    async def complete(self, session: UploadSession, parts: List[UploadedPart]) -> UploadResult:
        """Post the completion manifest and read the final object description."""
        xml = build_completion_xml(parts)

        status, text = await self._request(
            "POST", "completempu",
            params={"bucket": session.bucket, "key": session.key, "uploadId": session.upload_id},
            data=xml,
            headers={"Content-Type": "application/xml"},
            timeout=self._request_timeout
        )
        if not 200 <= status < 300:
            raise CompletionError(
                f"Complete MPU failed: {status} - {snippet(text, COMPLETION_SNIPPET_LENGTH)}",
                status=status, body=text)

        return parse_complete_result(text)

    async def abort(self, session: UploadSession) -> None:
        """
        Abort the multipart upload.

        This request ignores the cancellation signal: cleanup must run even
        when the upload was cancelled.
        """
        status, text = await self._request(
            "DELETE", "abortmpu",
            params={"Bucket": session.bucket, "Key": session.key, "UploadId": session.upload_id},
            timeout=self._abort_timeout,
            cancellable=False
        )
        if not 200 <= status < 300:
            raise BrokerRequestError(
                f"Abort MPU failed: {status} - {snippet(text)}", status=status, body=text)
