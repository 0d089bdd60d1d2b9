"""
Shared HTTP client helpers.

Request metrics common to the broker and the part uploader, and the
helper that races a request against the cancellation signal.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

from ...core.exceptions import UploadCancelled

T = TypeVar("T")

BODY_SNIPPET_LENGTH = 200


@dataclass
class RequestMetrics:
    """Request accounting for one upload."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_response_time: float = 0.0
    last_request_time: Optional[float] = None
    last_error: Optional[str] = None

    @property
    def average_response_time(self) -> float:
        """Calculate average response time."""
        if self.total_requests == 0:
            return 0.0
        return self.total_response_time / self.total_requests

    def record_request(self, success: bool, response_time: float) -> None:
        """Record a request result."""
        self.total_requests += 1
        self.total_response_time += response_time
        self.last_request_time = time.time()

        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

    def record_error(self, error: str) -> None:
        """Record an error."""
        self.last_error = error

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "average_response_time": self.average_response_time,
            "last_error": self.last_error,
        }


def snippet(text: Any, length: int = BODY_SNIPPET_LENGTH) -> str:
    """Shorten a response body for an error message."""
    return str(text or "")[:length]


async def run_cancellable(aw: Awaitable[T], signal: Optional[asyncio.Event]) -> T:
    """
    Await ``aw`` unless the cancellation signal fires first.

    Args:
        aw: Awaitable to run
        signal: Cancellation signal, or None for an uncancellable call

    Returns:
        The result of ``aw``

    Raises:
        UploadCancelled: If the signal is set before ``aw`` finishes; the
            underlying task is cancelled
    """
    if signal is None:
        return await aw

    task = asyncio.ensure_future(aw)
    if signal.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise UploadCancelled()

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)
        raise

    if task.done():
        waiter.cancel()
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise UploadCancelled()


async def cancellable_sleep(delay: float, signal: Optional[asyncio.Event]) -> bool:
    """
    Sleep for ``delay`` seconds.

    Returns:
        True if the sleep was cut short by the cancellation signal
    """
    try:
        await run_cancellable(asyncio.sleep(delay), signal)
    except UploadCancelled:
        return True
    return False
