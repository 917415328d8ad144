"""
External Write Queue Service

Serializes every outbound call to monday.com through one cooperative
processing loop so the per-minute API ceiling is respected without any
cross-worker coordination.

Key Features:
- Priority ordering: highest priority first, submission order within a priority
- Deduplication: a second enqueue with the same dedupe key while the first is
  queued or running shares the first task's outcome
- Sliding-window rate limiting: at most `max_requests` dispatches in any
  trailing `window_seconds`; every attempt, retries included, counts
- Retry with exponential backoff via RetryPolicy; 429 honours Retry-After,
  other 4xx fail immediately, 5xx / network / timeout errors are retried
- Live metrics (see QueueMetrics)

The clock and sleep functions are injectable so tests can drive the queue
deterministically without real timers.

Usage:
    queue = ExternalWriteQueue.from_settings(get_settings())
    queue.start()

    value = await queue.enqueue(lambda: client.change_column_value(...), priority=5,
                                dedupe_key="123:status:abc")
    result = await queue.submit(task)   # WriteResult, never raises for task errors

    await queue.close()
"""

import asyncio
import heapq
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

import httpx

from lead_router.core.exceptions import ExternalApiError
from lead_router.models.enums import WritebackErrorCode
from lead_router.models.schemas import QueueMetrics, WriteError, WriteResult

logger = logging.getLogger(__name__)


Task = Callable[[], Awaitable[Any]]
Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass
class RetryPolicy:
    """
    Retry and backoff rules for queued writes.

    Attributes:
        max_attempts: Total attempts per task, including the first.
        base_delay: Backoff in seconds before the first retry.
        multiplier: Growth factor applied to each further retry.
        max_delay: Upper bound on a single backoff.
        rate_limit_default_wait: Wait after a 429 without a Retry-After hint.
    """
    max_attempts: int = 4
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    rate_limit_default_wait: float = 60.0

    def classify(self, error: BaseException) -> Tuple[WritebackErrorCode, bool]:
        """
        Map an exception to an error code and a retryable flag.

        Returns:
            (code, retryable)
        """
        if isinstance(error, ExternalApiError):
            status = error.http_status
            if status == 429:
                return WritebackErrorCode.RATE_LIMITED, True
            if status is None:
                return WritebackErrorCode.API_ERROR, error.retryable
            if status >= 500:
                return WritebackErrorCode.SERVER_ERROR, True
            return WritebackErrorCode.CLIENT_ERROR, False
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            if status == 429:
                return WritebackErrorCode.RATE_LIMITED, True
            if status >= 500:
                return WritebackErrorCode.SERVER_ERROR, True
            return WritebackErrorCode.CLIENT_ERROR, False
        if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
            return WritebackErrorCode.TIMEOUT, True
        if isinstance(error, (httpx.TransportError, ConnectionError)):
            return WritebackErrorCode.NETWORK_ERROR, True
        return WritebackErrorCode.UNKNOWN, False

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """Whether another attempt is allowed after `attempt` attempts failed with `error`."""
        if attempt >= self.max_attempts:
            return False
        _, retryable = self.classify(error)
        return retryable

    def next_delay(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """
        Seconds to wait before attempt number `attempt + 1`.

        Args:
            attempt: Number of attempts already made (>= 1).
            error: The error of the last attempt; a 429 switches to the
                rate limit wait.
        """
        if error is not None and _is_rate_limited(error):
            retry_after = _retry_after(error)
            return retry_after if retry_after is not None else self.rate_limit_default_wait
        delay = self.base_delay * (self.multiplier ** max(0, attempt - 1))
        return min(delay, self.max_delay)


def _is_rate_limited(error: BaseException) -> bool:
    if isinstance(error, ExternalApiError):
        return error.is_rate_limited
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == 429
    return False


def _retry_after(error: BaseException) -> Optional[float]:
    if isinstance(error, ExternalApiError):
        return error.retry_after
    if isinstance(error, httpx.HTTPStatusError):
        header = error.response.headers.get('retry-after')
        try:
            return float(header) if header is not None else None
        except ValueError:
            return None
    return None


# =============================================================================
# Queue Internals
# =============================================================================


@dataclass
class _Outcome:
    result: WriteResult
    error: Optional[BaseException] = None


@dataclass
class _QueuedTask:
    task: Task
    priority: int
    sequence: int
    enqueued_at: float
    future: 'asyncio.Future[_Outcome]'
    dedupe_key: Optional[str] = None
    attempts: int = 0


@dataclass
class _Counters:
    total: int = 0
    successful: int = 0
    failed: int = 0
    retried: int = 0
    waited: int = 0
    average_wait_ms: float = 0.0


# =============================================================================
# External Write Queue
# =============================================================================


class ExternalWriteQueue:
    """
    Priority-ordered, rate-limited, retrying scheduler for outbound writes.

    One instance per process (or per test); exactly one processing loop per
    instance. Queued work cannot be cancelled.
    """

    def __init__(
        self,
        max_requests: int = 90,
        window_seconds: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError('max_requests must be at least 1')
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep

        self._heap: List[Tuple[int, int, _QueuedTask]] = []
        self._sequence = itertools.count()
        self._inflight: Dict[str, 'asyncio.Future[_Outcome]'] = {}
        self._dispatches: Deque[float] = deque()
        self._counters = _Counters()

        self._wakeup: Optional[asyncio.Event] = None
        self._worker: Optional[asyncio.Task] = None
        self._closing = False

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> 'ExternalWriteQueue':
        policy = RetryPolicy(
            max_attempts=settings.queue_max_attempts,
            base_delay=settings.queue_base_delay_seconds,
            multiplier=settings.queue_backoff_multiplier,
            max_delay=settings.queue_max_delay_seconds,
            rate_limit_default_wait=settings.queue_rate_limit_default_wait_seconds,
        )
        return cls(
            max_requests=settings.queue_max_requests_per_minute,
            window_seconds=settings.queue_window_seconds,
            retry_policy=policy,
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the processing loop on the running event loop."""
        if self._closing:
            raise RuntimeError('Write queue is closed')
        if self.running:
            return
        self._wakeup = asyncio.Event()
        self._worker = asyncio.create_task(self._run(), name='external-write-queue')
        logger.info(f"Write queue started (ceiling {self.max_requests}/{self.window_seconds:g}s)")

    async def close(self) -> None:
        """Drain queued work, then stop the processing loop."""
        self._closing = True
        if self._wakeup is not None:
            self._wakeup.set()
        if self._worker is not None:
            await self._worker
            self._worker = None
        logger.info('Write queue stopped')

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def enqueue(self, task: Task, priority: int = 0, dedupe_key: Optional[str] = None) -> Any:
        """
        Schedule a task and wait for its value.

        Args:
            task: Zero-argument coroutine function performing one API call.
            priority: Higher runs first.
            dedupe_key: Tasks sharing a key while pending share one execution.

        Returns:
            Whatever the task returned.

        Raises:
            The task's last exception once retries are exhausted or the
            error is not retryable.
        """
        # Joiners share one future; one caller being cancelled must not cancel it for the rest
        outcome = await asyncio.shield(self._schedule(task, priority, dedupe_key))
        if outcome.error is not None:
            raise outcome.error
        return outcome.result.value

    async def submit(self, task: Task, priority: int = 0, dedupe_key: Optional[str] = None) -> WriteResult:
        """Like enqueue(), but return a WriteResult instead of raising task errors."""
        outcome = await asyncio.shield(self._schedule(task, priority, dedupe_key))
        return outcome.result

    def get_metrics(self) -> QueueMetrics:
        self._prune(self._clock())
        return QueueMetrics(
            totalRequests=self._counters.total,
            successfulRequests=self._counters.successful,
            failedRequests=self._counters.failed,
            retriedRequests=self._counters.retried,
            queueSize=len(self._heap),
            averageWaitTime=round(self._counters.average_wait_ms, 2),
            requestsPerMinute=len(self._dispatches),
        )

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _schedule(self, task: Task, priority: int, dedupe_key: Optional[str]) -> 'asyncio.Future[_Outcome]':
        if self._closing:
            raise RuntimeError('Write queue is closed')

        if dedupe_key is not None and dedupe_key in self._inflight:
            logger.debug(f"Duplicate write {dedupe_key} joined the pending request")
            return self._inflight[dedupe_key]

        if not self.running:
            self.start()

        loop = asyncio.get_running_loop()
        item = _QueuedTask(
            task=task,
            priority=priority,
            sequence=next(self._sequence),
            enqueued_at=self._clock(),
            future=loop.create_future(),
            dedupe_key=dedupe_key,
        )
        heapq.heappush(self._heap, (-priority, item.sequence, item))
        if dedupe_key is not None:
            self._inflight[dedupe_key] = item.future
        self._counters.total += 1

        logger.debug(f"Write enqueued (priority={priority}, queue size={len(self._heap)})")

        assert self._wakeup is not None
        self._wakeup.set()
        return item.future

    # -------------------------------------------------------------------------
    # Processing Loop
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        assert self._wakeup is not None
        while True:
            if not self._heap:
                if self._closing:
                    return
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            _, _, item = heapq.heappop(self._heap)
            self._record_wait((self._clock() - item.enqueued_at) * 1000.0)

            outcome = await self._execute(item)

            if item.dedupe_key is not None:
                self._inflight.pop(item.dedupe_key, None)
            if not item.future.done():
                item.future.set_result(outcome)

    async def _execute(self, item: _QueuedTask) -> _Outcome:
        policy = self.retry_policy
        started = self._clock()

        while True:
            await self._await_window()
            self._dispatches.append(self._clock())
            item.attempts += 1

            try:
                value = await item.task()
            except Exception as exc:
                code, retryable = policy.classify(exc)

                if policy.should_retry(item.attempts, exc):
                    delay = policy.next_delay(item.attempts, exc)
                    if code == WritebackErrorCode.RATE_LIMITED:
                        logger.warning(f"Rate limited by external API, waiting {delay:g}s before retry")
                    else:
                        logger.info(
                            f"Retrying write (attempt {item.attempts + 1}/{policy.max_attempts}) "
                            f"in {delay:g}s after {code.value}: {exc}"
                        )
                    self._counters.retried += 1
                    await self._sleep(delay)
                    continue

                self._counters.failed += 1
                logger.error(f"Write failed permanently after {item.attempts} attempt(s): {exc}")
                return _Outcome(
                    result=WriteResult(
                        success=False,
                        attempts=item.attempts,
                        durationMs=round((self._clock() - started) * 1000.0, 2),
                        error=WriteError(message=str(exc) or exc.__class__.__name__, code=code, retryable=retryable),
                    ),
                    error=exc,
                )

            self._counters.successful += 1
            return _Outcome(
                result=WriteResult(
                    success=True,
                    attempts=item.attempts,
                    durationMs=round((self._clock() - started) * 1000.0, 2),
                    value=value,
                ),
            )

    async def _await_window(self) -> None:
        while True:
            now = self._clock()
            self._prune(now)
            if len(self._dispatches) < self.max_requests:
                return
            oldest = self._dispatches[0]
            wait = self.window_seconds - (now - oldest)
            if wait > 0:
                logger.debug(f"Rate ceiling reached ({len(self._dispatches)}/{self.max_requests}), waiting {wait:.2f}s")
                await self._sleep(wait)
            # the oldest dispatch has now left the window
            while self._dispatches and self._dispatches[0] <= oldest:
                self._dispatches.popleft()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._dispatches and self._dispatches[0] <= cutoff:
            self._dispatches.popleft()

    def _record_wait(self, wait_ms: float) -> None:
        counters = self._counters
        counters.waited += 1
        counters.average_wait_ms += (wait_ms - counters.average_wait_ms) / counters.waited


__all__ = [
    'RetryPolicy',
    'ExternalWriteQueue',
]
