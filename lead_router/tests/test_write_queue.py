"""
Test Module for the External Write Queue.

All tests run on the FakeClock from conftest: sleeps advance virtual time, so
backoff and rate-limit waits are asserted exactly without real timers.

Covers:
- RetryPolicy classification and delays
- Priority ordering and FIFO within a priority
- Deduplication of pending tasks
- Sliding-window rate limit bound
- Retry exhaustion, non-retryable 4xx, 429 Retry-After handling
- Metrics and lifecycle
"""

import asyncio
from typing import Any, List

import httpx
import pytest

from lead_router.core.exceptions import ExternalApiError
from lead_router.models.enums import WritebackErrorCode
from lead_router.services.write_queue import ExternalWriteQueue, RetryPolicy
from lead_router.tests.conftest import FakeClock


def _failing(error: BaseException, calls: List[int]):
    async def task() -> Any:
        calls.append(1)
        raise error
    return task


async def _hold_worker(queue: ExternalWriteQueue, order: List[str]):
    """Occupy the processing loop until the returned event is set."""
    release = asyncio.Event()
    started = asyncio.Event()

    async def blocker() -> str:
        started.set()
        await release.wait()
        order.append('blocker')
        return 'blocker'

    pending = asyncio.ensure_future(queue.enqueue(blocker, priority=100))
    await started.wait()
    return release, pending


# ============================================================
# RETRY POLICY
# ============================================================

class TestRetryPolicy:

    def test_exponential_delays_are_capped(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=5.0)

        assert [policy.next_delay(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_rate_limit_delay_prefers_retry_after(self):
        policy = RetryPolicy(rate_limit_default_wait=60.0)

        assert policy.next_delay(1, ExternalApiError('slow down', http_status=429, retry_after=7)) == 7
        assert policy.next_delay(1, ExternalApiError('slow down', http_status=429)) == 60.0

    @pytest.mark.parametrize('error,code,retryable', [
        (ExternalApiError('x', http_status=429), WritebackErrorCode.RATE_LIMITED, True),
        (ExternalApiError('x', http_status=503), WritebackErrorCode.SERVER_ERROR, True),
        (ExternalApiError('x', http_status=400), WritebackErrorCode.CLIENT_ERROR, False),
        (ExternalApiError('x', transient=True), WritebackErrorCode.API_ERROR, True),
        (ExternalApiError('x'), WritebackErrorCode.API_ERROR, False),
        (httpx.ReadTimeout('x'), WritebackErrorCode.TIMEOUT, True),
        (httpx.ConnectError('x'), WritebackErrorCode.NETWORK_ERROR, True),
        (ValueError('x'), WritebackErrorCode.UNKNOWN, False),
    ])
    def test_classify(self, error, code, retryable):
        assert RetryPolicy().classify(error) == (code, retryable)

    def test_should_retry_respects_max_attempts(self):
        policy = RetryPolicy(max_attempts=3)
        error = ExternalApiError('x', http_status=500)

        assert policy.should_retry(2, error) is True
        assert policy.should_retry(3, error) is False


# ============================================================
# ORDERING AND DEDUPLICATION
# ============================================================

@pytest.mark.asyncio
class TestOrdering:

    async def test_higher_priority_runs_first_then_fifo(self, write_queue: ExternalWriteQueue):
        # Arrange
        order: List[str] = []
        release, blocker = await _hold_worker(write_queue, order)

        def make(name: str):
            async def task() -> str:
                order.append(name)
                return name
            return task

        # Act
        pending = [
            asyncio.ensure_future(write_queue.enqueue(make('low-1'), priority=1)),
            asyncio.ensure_future(write_queue.enqueue(make('high'), priority=10)),
            asyncio.ensure_future(write_queue.enqueue(make('low-2'), priority=1)),
            asyncio.ensure_future(write_queue.enqueue(make('mid'), priority=5)),
        ]
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(blocker, *pending)

        # Assert
        assert order == ['blocker', 'high', 'mid', 'low-1', 'low-2']

    async def test_duplicate_key_shares_one_execution(self, write_queue: ExternalWriteQueue):
        order: List[str] = []
        release, blocker = await _hold_worker(write_queue, order)
        calls: List[int] = []

        async def write() -> str:
            calls.append(1)
            return 'done'

        first = asyncio.ensure_future(write_queue.enqueue(write, dedupe_key='5001:person:abc'))
        second = asyncio.ensure_future(write_queue.enqueue(write, dedupe_key='5001:person:abc'))
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second, blocker)

        assert results[:2] == ['done', 'done']
        assert len(calls) == 1
        assert write_queue.get_metrics().totalRequests == 2

    async def test_duplicate_key_shares_failure(self, write_queue: ExternalWriteQueue):
        order: List[str] = []
        release, blocker = await _hold_worker(write_queue, order)
        calls: List[int] = []
        task = _failing(ExternalApiError('bad column', http_status=400), calls)

        first = asyncio.ensure_future(write_queue.submit(task, dedupe_key='k'))
        second = asyncio.ensure_future(write_queue.submit(task, dedupe_key='k'))
        await asyncio.sleep(0)
        release.set()
        a, b, _ = await asyncio.gather(first, second, blocker)

        assert a.success is False and b.success is False
        assert a.error.code == WritebackErrorCode.CLIENT_ERROR
        assert len(calls) == 1

    async def test_cancelled_caller_does_not_cancel_joiners(self, write_queue: ExternalWriteQueue):
        # Arrange
        order: List[str] = []
        release, blocker = await _hold_worker(write_queue, order)
        calls: List[int] = []

        async def write() -> str:
            calls.append(1)
            return 'done'

        first = asyncio.ensure_future(write_queue.enqueue(write, dedupe_key='5001:person:abc'))
        second = asyncio.ensure_future(write_queue.enqueue(write, dedupe_key='5001:person:abc'))
        await asyncio.sleep(0)

        # Act
        first.cancel()
        release.set()
        result, _ = await asyncio.gather(second, blocker)

        # Assert
        assert first.cancelled()
        assert result == 'done'
        assert len(calls) == 1

    async def test_key_is_reusable_after_completion(self, write_queue: ExternalWriteQueue):
        calls: List[int] = []

        async def write() -> int:
            calls.append(1)
            return len(calls)

        assert await write_queue.enqueue(write, dedupe_key='k') == 1
        assert await write_queue.enqueue(write, dedupe_key='k') == 2


# ============================================================
# RATE LIMITING
# ============================================================

@pytest.mark.asyncio
class TestRateLimit:

    async def test_never_exceeds_ceiling_in_any_window(self, fake_clock: FakeClock):
        # Arrange
        queue = ExternalWriteQueue(max_requests=3, window_seconds=60.0, clock=fake_clock, sleep=fake_clock.sleep)
        dispatched: List[float] = []

        async def write() -> None:
            dispatched.append(fake_clock())

        # Act
        await asyncio.gather(*(queue.enqueue(write) for _ in range(8)))
        await queue.close()

        # Assert
        assert len(dispatched) == 8
        for i in range(len(dispatched) - 3):
            assert dispatched[i + 3] - dispatched[i] >= 60.0
        assert dispatched[:3] == [1000.0, 1000.0, 1000.0]
        assert dispatched[3] == pytest.approx(1060.0)

    async def test_retries_count_against_the_window(self, fake_clock: FakeClock):
        queue = ExternalWriteQueue(
            max_requests=2,
            window_seconds=60.0,
            retry_policy=RetryPolicy(max_attempts=3, base_delay=1.0),
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )
        calls: List[int] = []

        result = await queue.submit(_failing(ExternalApiError('down', http_status=502), calls))
        await queue.close()

        assert result.attempts == 3
        # third attempt had to wait for the first dispatch to leave the window
        assert fake_clock.now >= 1060.0

    async def test_requests_per_minute_metric(self, write_queue: ExternalWriteQueue, fake_clock: FakeClock):
        async def write() -> None:
            return None

        await asyncio.gather(*(write_queue.enqueue(write) for _ in range(4)))
        assert write_queue.get_metrics().requestsPerMinute == 4

        fake_clock.advance(61)
        assert write_queue.get_metrics().requestsPerMinute == 0


# ============================================================
# RETRY BEHAVIOUR
# ============================================================

@pytest.mark.asyncio
class TestRetries:

    async def test_exhaustion_returns_failed_result(self, write_queue: ExternalWriteQueue, fake_clock: FakeClock):
        calls: List[int] = []

        result = await write_queue.submit(_failing(ExternalApiError('unavailable', http_status=503), calls))

        assert result.success is False
        assert result.attempts == 4
        assert len(calls) == 4
        assert result.error.code == WritebackErrorCode.SERVER_ERROR
        assert result.error.retryable is True
        assert fake_clock.sleeps == [1.0, 2.0, 4.0]
        assert result.durationMs == pytest.approx(7000.0)

        metrics = write_queue.get_metrics()
        assert metrics.failedRequests == 1
        assert metrics.retriedRequests == 3

    async def test_enqueue_raises_last_error(self, write_queue: ExternalWriteQueue):
        calls: List[int] = []

        with pytest.raises(ExternalApiError):
            await write_queue.enqueue(_failing(ExternalApiError('unavailable', http_status=500), calls))

        assert len(calls) == 4

    async def test_client_error_is_not_retried(self, write_queue: ExternalWriteQueue, fake_clock: FakeClock):
        calls: List[int] = []

        result = await write_queue.submit(_failing(ExternalApiError('bad request', http_status=400), calls))

        assert result.success is False
        assert result.attempts == 1
        assert result.error.retryable is False
        assert fake_clock.sleeps == []

    async def test_rate_limited_waits_retry_after(self, write_queue: ExternalWriteQueue, fake_clock: FakeClock):
        attempts: List[int] = []

        async def write() -> str:
            attempts.append(1)
            if len(attempts) == 1:
                raise ExternalApiError('Too Many Requests', http_status=429, retry_after=7)
            return 'ok'

        result = await write_queue.submit(write)

        assert result.success is True
        assert result.attempts == 2
        assert result.value == 'ok'
        assert fake_clock.sleeps == [7]

    async def test_rate_limited_without_hint_waits_default(self, write_queue: ExternalWriteQueue, fake_clock: FakeClock):
        attempts: List[int] = []

        async def write() -> str:
            attempts.append(1)
            if len(attempts) == 1:
                raise ExternalApiError('Too Many Requests', http_status=429)
            return 'ok'

        await write_queue.enqueue(write)

        assert fake_clock.sleeps == [60.0]

    async def test_network_error_then_success(self, write_queue: ExternalWriteQueue):
        attempts: List[int] = []

        async def write() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise httpx.ConnectError('connection refused')
            return 'ok'

        assert await write_queue.enqueue(write) == 'ok'
        assert len(attempts) == 3
        assert write_queue.get_metrics().successfulRequests == 1


# ============================================================
# LIFECYCLE
# ============================================================

@pytest.mark.asyncio
class TestLifecycle:

    async def test_enqueue_starts_the_loop(self, fake_clock: FakeClock):
        queue = ExternalWriteQueue(clock=fake_clock, sleep=fake_clock.sleep)
        assert queue.running is False

        async def write() -> int:
            return 1

        assert await queue.enqueue(write) == 1
        assert queue.running is True
        await queue.close()
        assert queue.running is False

    async def test_close_drains_pending_work(self, fake_clock: FakeClock):
        queue = ExternalWriteQueue(clock=fake_clock, sleep=fake_clock.sleep)
        done: List[int] = []

        async def write() -> None:
            done.append(1)

        pending = [asyncio.ensure_future(queue.enqueue(write)) for _ in range(3)]
        await asyncio.sleep(0)
        await queue.close()
        await asyncio.gather(*pending)

        assert len(done) == 3

    async def test_enqueue_after_close_is_rejected(self, fake_clock: FakeClock):
        queue = ExternalWriteQueue(clock=fake_clock, sleep=fake_clock.sleep)
        queue.start()
        await queue.close()

        async def write() -> None:
            return None

        with pytest.raises(RuntimeError):
            await queue.enqueue(write)


class TestConstruction:

    def test_ceiling_must_be_positive(self):
        with pytest.raises(ValueError):
            ExternalWriteQueue(max_requests=0)

    def test_from_settings(self):
        class _Settings:
            queue_max_requests_per_minute = 50
            queue_window_seconds = 30.0
            queue_max_attempts = 2
            queue_base_delay_seconds = 0.5
            queue_backoff_multiplier = 3.0
            queue_max_delay_seconds = 10.0
            queue_rate_limit_default_wait_seconds = 20.0

        queue = ExternalWriteQueue.from_settings(_Settings())

        assert queue.max_requests == 50
        assert queue.window_seconds == 30.0
        assert queue.retry_policy.max_attempts == 2
        assert queue.retry_policy.next_delay(2) == 1.5
