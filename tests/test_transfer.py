"""
Tests for attempt classification, backoff, progress accounting and
cancellation helpers.
"""

import asyncio

import pytest

from mpupload.core.domain.upload import AttemptOutcome, ProgressState
from mpupload.core.exceptions import UploadCancelled
from mpupload.infrastructure.clients.base import (
    RequestMetrics, cancellable_sleep, run_cancellable, snippet
)
from mpupload.infrastructure.services.upload.transfer import (
    backoff_delay, classify_attempt, is_retryable_status
)


class TestClassifyAttempt:
    """Test cases for classify_attempt."""

    def test_success_with_etag(self) -> None:
        result = classify_attempt(200, '"abc"')

        assert result.outcome is AttemptOutcome.SUCCESS
        assert result.etag == '"abc"'
        assert result.status == 200

    def test_success_without_etag_is_fatal(self) -> None:
        result = classify_attempt(200, None)

        assert result.outcome is AttemptOutcome.FATAL
        assert "missing etag" in result.detail

    def test_empty_etag_is_fatal(self) -> None:
        assert classify_attempt(204, "").outcome is AttemptOutcome.FATAL

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status: int) -> None:
        result = classify_attempt(status, None, body="SlowDown")

        assert result.outcome is AttemptOutcome.RETRYABLE
        assert result.detail == f"{status} - SlowDown"

    @pytest.mark.parametrize("status", [400, 403, 404, 409, 301])
    def test_fatal_statuses(self, status: int) -> None:
        assert classify_attempt(status, '"abc"').outcome is AttemptOutcome.FATAL

    def test_transport_error_is_retryable(self) -> None:
        result = classify_attempt(None, None, transport_error=ConnectionResetError("reset"))

        assert result.outcome is AttemptOutcome.RETRYABLE
        assert result.status is None
        assert "network error" in result.detail

    def test_long_body_is_shortened(self) -> None:
        result = classify_attempt(500, None, body="x" * 1000)

        assert len(result.detail) == len("500 - ") + 200

    def test_is_retryable_status(self) -> None:
        assert is_retryable_status(599)
        assert not is_retryable_status(499)


class TestBackoffDelay:
    """Test cases for backoff_delay."""

    def test_exponential_growth(self) -> None:
        no_jitter = lambda low, high: 0.0  # noqa: E731

        assert backoff_delay(1, 0.3, 0.1, rand=no_jitter) == pytest.approx(0.3)
        assert backoff_delay(2, 0.3, 0.1, rand=no_jitter) == pytest.approx(0.6)
        assert backoff_delay(3, 0.3, 0.1, rand=no_jitter) == pytest.approx(1.2)

    def test_jitter_range(self) -> None:
        for _ in range(50):
            delay = backoff_delay(1)
            assert 0.3 <= delay <= 0.4

    def test_jitter_bounds_passed_to_rand(self) -> None:
        calls = []

        def rand(low: float, high: float) -> float:
            calls.append((low, high))
            return high

        assert backoff_delay(2, 1.0, 0.5, rand=rand) == pytest.approx(2.5)
        assert calls == [(0, 0.5)]


class TestProgressState:
    """Test cases for progress accounting."""

    def test_advance_reports_delta(self) -> None:
        progress = ProgressState(total_bytes=300)
        progress.start_part()

        assert progress.advance(100) == 100
        assert progress.advance(250) == 150
        assert progress.bytes_sent == 250

    def test_retry_is_not_counted_twice(self) -> None:
        progress = ProgressState(total_bytes=200)
        progress.start_part()
        progress.advance(150)

        progress.start_attempt()
        assert progress.advance(50) == 0
        assert progress.advance(150) == 0
        assert progress.advance(200) == 50
        assert progress.bytes_sent == 200

    def test_new_part_resets_high_water(self) -> None:
        progress = ProgressState(total_bytes=200)
        progress.start_part()
        progress.advance(100)

        progress.start_part()
        assert progress.advance(40) == 40
        assert progress.bytes_sent == 140

    def test_counter_going_backwards_is_ignored(self) -> None:
        progress = ProgressState(total_bytes=100)
        progress.start_part()
        progress.advance(60)

        assert progress.advance(30) == 0
        assert progress.per_part_loaded == 60


class TestRunCancellable:
    """Test cases for racing requests against the cancellation signal."""

    @pytest.mark.asyncio
    async def test_without_signal(self) -> None:
        async def work() -> str:
            return "done"

        assert await run_cancellable(work(), None) == "done"

    @pytest.mark.asyncio
    async def test_signal_not_set(self) -> None:
        async def work() -> str:
            await asyncio.sleep(0)
            return "done"

        assert await run_cancellable(work(), asyncio.Event()) == "done"

    @pytest.mark.asyncio
    async def test_signal_already_set(self) -> None:
        started = []

        async def work() -> None:
            started.append(True)

        signal = asyncio.Event()
        signal.set()

        with pytest.raises(UploadCancelled):
            await run_cancellable(work(), signal)
        assert started == []

    @pytest.mark.asyncio
    async def test_signal_set_while_running(self) -> None:
        cancelled = []

        async def work() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        signal = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, signal.set)

        with pytest.raises(UploadCancelled):
            await asyncio.wait_for(run_cancellable(work(), signal), timeout=5)
        assert cancelled == [True]

    @pytest.mark.asyncio
    async def test_outer_cancellation_waits_for_work(self) -> None:
        cleaned_up = []

        async def work() -> None:
            try:
                await asyncio.sleep(10)
            finally:
                cleaned_up.append(True)

        outer = asyncio.ensure_future(run_cancellable(work(), asyncio.Event()))
        await asyncio.sleep(0.01)
        outer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await outer
        assert cleaned_up == [True]

    @pytest.mark.asyncio
    async def test_errors_propagate(self) -> None:
        async def work() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await run_cancellable(work(), asyncio.Event())

    @pytest.mark.asyncio
    async def test_cancellable_sleep(self) -> None:
        signal = asyncio.Event()
        assert await cancellable_sleep(0, signal) is False

        signal.set()
        assert await cancellable_sleep(10, signal) is True


class TestRequestMetrics:
    """Test cases for request metrics."""

    def test_record_requests(self) -> None:
        metrics = RequestMetrics()
        metrics.record_request(True, 0.2)
        metrics.record_request(False, 0.4)
        metrics.record_error("503")

        assert metrics.total_requests == 2
        assert metrics.successful_requests == 1
        assert metrics.failed_requests == 1
        assert metrics.average_response_time == pytest.approx(0.3)
        assert metrics.to_dict()["last_error"] == "503"

    def test_snippet(self) -> None:
        assert snippet(None) == ""
        assert snippet("abcdef", 3) == "abc"
