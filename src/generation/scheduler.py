"""Rate-limited, retrying FIFO queue for outbound generation calls.

One scheduler instance may be shared by every session in the process: all
calls go through a single queue drained by a single worker task, so the
per-minute quota is enforced globally rather than per session.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.generation.errors import ServiceUnavailableError, classify_error
from src.pipeline_config import SchedulerConfig

logger = logging.getLogger(__name__)

RequestFn = Callable[[], Awaitable[Any]]
Clock = Callable[[], int]
Sleep = Callable[[float], Awaitable[None]]

# Queue depth above which callers are told to back off
BACKPRESSURE_QUEUE_LENGTH = 5


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay_ms = retry_state.next_action.sleep * 1000 if retry_state.next_action else 0
    logger.warning(
        "Generation attempt %d failed (%s), retrying in %dms",
        retry_state.attempt_number,
        exc,
        delay_ms,
    )


@dataclass
class SchedulerStatus:
    """Point-in-time load report for the scheduler."""

    requests_in_window: int
    limit: int
    queue_length: int
    can_make_request: bool
    wait_time_ms: int
    in_flight: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestsInWindow": self.requests_in_window,
            "limit": self.limit,
            "queueLength": self.queue_length,
            "canMakeRequest": self.can_make_request,
            "waitTimeMs": self.wait_time_ms,
            "inFlight": self.in_flight,
        }


@dataclass
class _QueuedRequest:
    request_fn: RequestFn
    future: asyncio.Future


class RequestScheduler:
    """Serialize generation calls through one queue under a sliding-window limit.

    Admission: before each attempt the worker counts request start times in
    the last ``window_ms``; if the limit is reached it sleeps until the
    oldest one ages out. Every attempt, including retries, consumes quota.

    Retries: retryable failures are retried up to ``max_retries`` times by
    tenacity with ``min(max_delay, base_delay * 2**attempt)`` backoff; each
    retry goes back through admission. Permanent failures reject the future
    immediately. Closing the scheduler rejects the request in flight.

    ``clock`` (milliseconds) and ``sleep`` (seconds) are injectable so tests
    can drive the window with a fake clock.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        *,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.config = config or SchedulerConfig()
        self._clock = clock or monotonic_ms
        self._sleep = sleep or asyncio.sleep
        self._queue: deque[_QueuedRequest] = deque()
        self._history: deque[int] = deque()
        self._worker: asyncio.Task | None = None
        self._in_flight = False

    # -- public API --------------------------------------------------------

    def submit(self, request_fn: RequestFn) -> asyncio.Future:
        """Enqueue a zero-argument coroutine function; resolves with its result."""
        future = asyncio.get_running_loop().create_future()
        self._queue.append(_QueuedRequest(request_fn, future))
        logger.debug("Queued generation request (queue length %d)", len(self._queue))
        self._ensure_worker()
        return future

    def status(self) -> SchedulerStatus:
        wait_ms = self._wait_time_ms()
        return SchedulerStatus(
            requests_in_window=len(self._history),
            limit=self.config.requests_per_minute,
            queue_length=len(self._queue),
            can_make_request=wait_ms == 0,
            wait_time_ms=wait_ms,
            in_flight=self._in_flight,
        )

    def can_accept_more(self) -> bool:
        """Backpressure signal: false once the queue is deep or quota is spent."""
        return len(self._queue) < BACKPRESSURE_QUEUE_LENGTH and self._wait_time_ms() == 0

    def reset(self) -> None:
        """Reject every queued (not yet started) request and forget the window history."""
        dropped = 0
        while self._queue:
            queued = self._queue.popleft()
            if not queued.future.done():
                queued.future.set_exception(ServiceUnavailableError("scheduler reset"))
                dropped += 1
        self._history.clear()
        if dropped:
            logger.info("Scheduler reset, rejected %d queued request(s)", dropped)

    async def aclose(self) -> None:
        """Reject queued work and stop the worker task."""
        self.reset()
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

    # -- internals ---------------------------------------------------------

    def _prune(self, now: int) -> None:
        while self._history and now - self._history[0] >= self.config.window_ms:
            self._history.popleft()

    def _wait_time_ms(self) -> int:
        """Milliseconds until a new request may start; 0 when eligible now."""
        now = self._clock()
        self._prune(now)
        if len(self._history) < self.config.requests_per_minute:
            return 0
        return max(1, self._history[0] + self.config.window_ms - now)

    def _ensure_worker(self) -> None:
        loop = asyncio.get_running_loop()
        if self._worker is None or self._worker.done() or self._worker.get_loop() is not loop:
            self._worker = loop.create_task(self._run())

    async def _admit(self) -> None:
        while (wait_ms := self._wait_time_ms()) > 0:
            logger.info("Rate limit reached, waiting %dms for quota", wait_ms)
            await self._sleep(wait_ms / 1000)
        self._history.append(self._clock())

    async def _run(self) -> None:
        while self._queue:
            queued = self._queue.popleft()
            if queued.future.done():
                continue
            await self._execute(queued)

    def _retrying(self, queued: _QueuedRequest) -> AsyncRetrying:
        config = self.config

        def should_retry(exc: BaseException) -> bool:
            if isinstance(exc, asyncio.CancelledError) or queued.future.done():
                return False
            return classify_error(exc).retryable

        return AsyncRetrying(
            stop=stop_after_attempt(config.max_retries + 1),
            wait=wait_exponential(multiplier=config.base_delay_ms / 1000, max=config.max_delay_ms / 1000),
            retry=retry_if_exception(should_retry),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    async def _execute(self, queued: _QueuedRequest) -> None:
        timeout = self.config.request_timeout_ms / 1000
        attempts = 0
        result: Any = None
        try:
            async for attempt in self._retrying(queued):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await self._admit()
                    self._in_flight = True
                    try:
                        result = await asyncio.wait_for(queued.request_fn(), timeout)
                    finally:
                        self._in_flight = False
        except asyncio.CancelledError:
            if not queued.future.done():
                queued.future.set_exception(ServiceUnavailableError("scheduler closed", attempts=attempts))
            raise
        except Exception as exc:
            error = classify_error(exc)
            error.attempts = attempts
            logger.error("Generation request failed after %d attempt(s): %s", attempts, error.message)
            if not queued.future.done():
                queued.future.set_exception(error)
            return

        if not queued.future.done():
            queued.future.set_result(result)
