"""Request scheduler for the Versionista client.

This module drives every outbound request through one admission loop that
enforces three independent throttles: an in-flight concurrency limit, a
fixed-window request cap, and a periodic cooldown pause. Transient failures
are retried with linear backoff.

Features:
- Priority insertion (priority requests go ahead of queued normal ones)
- Concurrency, rate-window and cooldown throttling
- Retry on connection resets and on caller-classified responses
- One cookie jar shared by every request the scheduler issues

All scheduler state is owned by a single worker coroutine fed by an event
queue ("submitted", "completed", "timer fired", "wake"). Dispatched requests
run as separate tasks and only report back by posting events.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import httpx

from versionista_scraper.config import SchedulerConfig
from versionista_scraper.logging import bind_task, get_logger
from versionista_scraper.versionista.exceptions import (
    RetriesExhaustedError,
    SchedulerClosedError,
)
from versionista_scraper.versionista.schemas import RequestDescriptor
from versionista_scraper.versionista.transport import (
    Executor,
    RetryPredicate,
    is_connection_reset,
    retry_on_gateway_error,
)

from .throttle import Cooldown, PauseReason, RateWindow, Throttle

logger = get_logger(__name__)


class RequestState(IntEnum):
    """State of a queued request."""

    PENDING = 1
    IN_FLIGHT = 2
    COMPLETED = 3
    FAILED = 4
    CANCELLED = 5


@dataclass
class QueuedRequest:
    """A request owned by the scheduler until its future is settled."""

    id: str
    descriptor: RequestDescriptor
    future: asyncio.Future[httpx.Response]
    retry_if: RetryPredicate
    priority: bool = False
    retry_count: int = 0
    attempts: int = 0
    state: RequestState = RequestState.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None


# -----------------------------------------------------------------------------
# Worker events
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class _Submitted:
    request: QueuedRequest


@dataclass(frozen=True)
class _Completed:
    request: QueuedRequest
    response: httpx.Response | None
    error: Exception | None


@dataclass(frozen=True)
class _TimerFired:
    generation: int


@dataclass(frozen=True)
class _Wake:
    pass


_Event = _Submitted | _Completed | _TimerFired | _Wake


class _RequestQueue:
    """Pending requests in dispatch order.

    Retries are served first (most recent first), then priority requests,
    then normal requests. Each class is FIFO apart from retries.
    """

    def __init__(self) -> None:
        self._retries: deque[QueuedRequest] = deque()
        self._priority: deque[QueuedRequest] = deque()
        self._normal: deque[QueuedRequest] = deque()

    def push(self, request: QueuedRequest) -> None:
        (self._priority if request.priority else self._normal).append(request)

    def push_retry(self, request: QueuedRequest) -> None:
        self._retries.appendleft(request)

    def pop(self) -> QueuedRequest:
        for lane in (self._retries, self._priority, self._normal):
            if lane:
                return lane.popleft()
        raise IndexError("pop from an empty request queue")

    def drain(self) -> Iterator[QueuedRequest]:
        while self:
            yield self.pop()

    def __len__(self) -> int:
        return len(self._retries) + len(self._priority) + len(self._normal)


class RequestScheduler:
    """Throttled, retrying dispatcher for requests to a single upstream host.

    Usage:
        async with httpx.AsyncClient() as http:
            scheduler = RequestScheduler(HttpExecutor(http), SchedulerConfig())

            response = await scheduler.submit(RequestDescriptor(url="https://..."))

            # Jump ahead of everything already queued
            await scheduler.submit(descriptor, priority=True)

            # Retry on a custom condition, or never retry
            await scheduler.submit(descriptor, retry_if=lambda r: r.status_code == 429)
            await scheduler.submit(descriptor, no_retry=True)

            await scheduler.shutdown()
    """

    def __init__(
        self,
        execute: Executor,
        config: SchedulerConfig | None = None,
        cookies: httpx.Cookies | None = None,
    ) -> None:
        """Initialize the request scheduler.

        Args:
            execute: HTTP execution primitive called for every dispatch
            config: Throttle and retry settings (defaults if not provided)
            cookies: Session cookie jar passed to every dispatch (a new
                     empty jar if not provided)
        """
        self._execute = execute
        self._config = config or SchedulerConfig()
        self._cookies = cookies if cookies is not None else httpx.Cookies()

        # Throttle state, mutated only by the worker
        self._queue = _RequestQueue()
        self._available_slots = self._config.max_concurrent_requests
        self._window = RateWindow(self._config.max_per_window, self._config.window_seconds)
        self._cooldown = Cooldown(self._config.sleep_every)
        self._throttle = Throttle()
        self._timer: asyncio.TimerHandle | None = None

        # Worker plumbing
        self._events: asyncio.Queue[_Event] = asyncio.Queue()
        self._running = False
        self._closed = False
        self._worker_task: asyncio.Task[None] | None = None
        self._in_flight: dict[str, QueuedRequest] = {}
        self._active_tasks: set[asyncio.Task[None]] = set()  # Prevent task GC
        self._unprocessed_submissions = 0

        # Statistics
        self._total_submitted = 0
        self._total_dispatched = 0
        self._total_completed = 0
        self._total_failed = 0
        self._total_retries = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def start(self) -> None:
        """Start the worker loop.

        Calling this is optional; the first enqueued request starts the
        worker. It also reopens a scheduler that was shut down.
        """
        self._closed = False
        self._ensure_worker()

    def _ensure_worker(self) -> None:
        if self._running:
            return

        self._running = True
        self._worker_task = asyncio.get_running_loop().create_task(self._worker_loop())
        logger.info(
            "Request scheduler started (max_concurrent={}, max_per_window={}, sleep_every={})",
            self._config.max_concurrent_requests,
            self._config.max_per_window or "unlimited",
            self._config.sleep_every,
        )

    async def shutdown(self, wait: bool = True, timeout: float = 30.0) -> None:
        """Stop the scheduler.

        New requests are rejected once shutdown begins. Requests still
        pending or in flight when the scheduler stops are rejected with
        SchedulerClosedError.

        Args:
            wait: If True, wait for queued and in-flight requests to finish
            timeout: Maximum seconds to wait
        """
        self._closed = True

        if wait and not self.is_idle:
            logger.info(
                "Waiting for {} queued and {} in-flight requests...",
                self.queue_size,
                self.in_flight,
            )
            loop = asyncio.get_running_loop()
            start = loop.time()
            while not self.is_idle and (loop.time() - start) < timeout:
                await asyncio.sleep(0.01)

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None
        self._running = False

        for task in list(self._active_tasks):
            task.cancel()
        if self._active_tasks:
            await asyncio.gather(*self._active_tasks, return_exceptions=True)

        self._reject_outstanding()
        self._reset_dispatch_state()

        logger.info(
            "Request scheduler stopped (completed={}, failed={}, retries={})",
            self._total_completed,
            self._total_failed,
            self._total_retries,
        )

    def _reject_outstanding(self) -> None:
        """Reject every request the scheduler still owns."""
        outstanding: list[QueuedRequest] = list(self._in_flight.values())
        self._in_flight.clear()
        outstanding.extend(self._queue.drain())
        while not self._events.empty():
            event = self._events.get_nowait()
            if isinstance(event, _Submitted):
                outstanding.append(event.request)
            elif isinstance(event, _Completed):
                outstanding.append(event.request)
        self._unprocessed_submissions = 0

        for request in outstanding:
            if request.future.done():
                continue
            request.state = RequestState.CANCELLED
            request.completed_at = datetime.now(UTC)
            request.future.set_exception(
                SchedulerClosedError(f"Scheduler shut down before {request.descriptor} finished")
            )

    def _reset_dispatch_state(self) -> None:
        """Return slots and clear pauses left behind by cancelled work.

        The rate window survives so a reopened scheduler stays within it.
        """
        self._available_slots = self._config.max_concurrent_requests
        self._cooldown = Cooldown(self._config.sleep_every)
        self._throttle = Throttle()

    @property
    def is_running(self) -> bool:
        """Whether the worker loop is running."""
        return self._running

    # -------------------------------------------------------------------------
    # Request Submission
    # -------------------------------------------------------------------------
    def enqueue(
        self,
        descriptor: RequestDescriptor,
        *,
        priority: bool = False,
        retry_if: RetryPredicate | None = None,
        no_retry: bool = False,
    ) -> asyncio.Future[httpx.Response]:
        """Add a request to the queue.

        Must be called from a running event loop. Never raises: every
        outcome, including rejection after shutdown, arrives through the
        returned future.

        Args:
            descriptor: Request to issue
            priority: Queue ahead of all pending non-priority requests
            retry_if: Decides whether a response should be retried
                      (default: HTTP 502-504)
            no_retry: Attempt once; surface any retriable failure instead
                      of retrying

        Returns:
            Future resolving to the response
        """
        future: asyncio.Future[httpx.Response] = asyncio.get_running_loop().create_future()
        request = QueuedRequest(
            id=str(uuid.uuid4()),
            descriptor=descriptor,
            future=future,
            retry_if=retry_if or retry_on_gateway_error,
            priority=priority,
            retry_count=self._config.max_retries if no_retry else 0,
        )

        if self._closed:
            request.state = RequestState.CANCELLED
            future.set_exception(SchedulerClosedError(f"Scheduler is shut down: {descriptor}"))
            return future

        self._total_submitted += 1
        self._unprocessed_submissions += 1
        self._events.put_nowait(_Submitted(request))
        self._ensure_worker()

        logger.debug(
            "Enqueued request {} {} (priority={}, queue_size={})",
            request.id[:8],
            descriptor,
            priority,
            self.queue_size,
        )
        return future

    async def submit(
        self,
        descriptor: RequestDescriptor,
        *,
        priority: bool = False,
        retry_if: RetryPredicate | None = None,
        no_retry: bool = False,
    ) -> httpx.Response:
        """Submit a request and wait for its response.

        Args:
            descriptor: Request to issue
            priority: Queue ahead of all pending non-priority requests
            retry_if: Decides whether a response should be retried
            no_retry: Attempt once without retrying

        Returns:
            The response

        Raises:
            RetriesExhaustedError: Response still retriable after all retries
            httpx.TransportError: Transport failure (after retries for resets)
            SchedulerClosedError: Scheduler shut down before completion
        """
        return await self.enqueue(
            descriptor,
            priority=priority,
            retry_if=retry_if,
            no_retry=no_retry,
        )

    # -------------------------------------------------------------------------
    # Worker Loop
    # -------------------------------------------------------------------------
    async def _worker_loop(self) -> None:
        """Consume events and run admission after each one."""
        while True:
            event = await self._events.get()
            try:
                self._handle_event(event)
            except Exception as e:
                logger.exception("Failed to handle {} event", type(event).__name__)
                self._recover(event, e)

    def _recover(self, event: _Event, error: Exception) -> None:
        """Settle the request an event was about and keep admitting."""
        if isinstance(event, _Completed):
            self._in_flight.pop(event.request.id, None)
            self._fail(event.request, error)
        asyncio.get_running_loop().call_soon(self._events.put_nowait, _Wake())

    def _handle_event(self, event: _Event) -> None:
        if isinstance(event, _Submitted):
            self._unprocessed_submissions -= 1
            self._queue.push(event.request)
        elif isinstance(event, _Completed):
            self._on_completed(event)
            # Admit on the next loop pass so callers resumed by the settled
            # future can queue follow-up work first.
            asyncio.get_running_loop().call_soon(self._events.put_nowait, _Wake())
            return
        elif isinstance(event, _TimerFired):
            if not self._throttle.resume(event.generation):
                return
            self._timer = None
            self._cooldown.reset()
            logger.debug("Pause over, resuming dispatch")

        self._admit()

    def _admit(self) -> None:
        """Dispatch queued requests while every throttle allows it."""
        loop = asyncio.get_running_loop()
        while not self._throttle.active and self._available_slots > 0 and self._queue:
            now = loop.time()
            self._window.refresh(now)
            if not self._window.has_capacity:
                self._pause(self._window.seconds_until_reset(now), PauseReason.RATE_WINDOW)
                return

            request = self._queue.pop()
            if request.future.done():
                # Caller gave up waiting; nothing left to deliver
                request.state = RequestState.CANCELLED
                continue

            self._available_slots -= 1
            self._window.consume()
            self._dispatch(request)

    def _dispatch(self, request: QueuedRequest) -> None:
        request.state = RequestState.IN_FLIGHT
        request.started_at = datetime.now(UTC)
        request.attempts += 1
        self._in_flight[request.id] = request
        self._total_dispatched += 1

        bind_task(request.id, request.descriptor.method, request.descriptor.url).debug(
            "Dispatching attempt {}", request.attempts
        )

        task = asyncio.get_running_loop().create_task(self._execute_request(request))
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)

    async def _execute_request(self, request: QueuedRequest) -> None:
        """Run one network operation and report the outcome to the worker."""
        response: httpx.Response | None = None
        error: Exception | None = None
        try:
            response = await self._execute(request.descriptor, self._cookies)
        except Exception as e:
            error = e
        self._events.put_nowait(_Completed(request, response, error))

    # -------------------------------------------------------------------------
    # Completion Handling
    # -------------------------------------------------------------------------
    def _on_completed(self, event: _Completed) -> None:
        request = event.request
        self._in_flight.pop(request.id, None)
        self._available_slots += 1

        if not self._throttle.active and self._cooldown.record_completion():
            self._pause(self._config.sleep_for_seconds, PauseReason.COOLDOWN)

        try:
            retriable = self._is_retriable(request, event)
        except Exception as e:
            self._fail(request, e)
            return

        if retriable and request.retry_count < self._config.max_retries:
            self._retry(request, event)
        elif event.error is not None:
            self._fail(request, event.error)
        elif retriable:
            assert event.response is not None
            self._fail(
                request,
                RetriesExhaustedError(str(request.descriptor), event.response, request.attempts),
            )
        else:
            assert event.response is not None
            self._succeed(request, event.response)

    def _is_retriable(self, request: QueuedRequest, event: _Completed) -> bool:
        if event.error is not None:
            return is_connection_reset(event.error)
        assert event.response is not None
        return bool(request.retry_if(event.response))

    def _retry(self, request: QueuedRequest, event: _Completed) -> None:
        request.retry_count += 1
        request.state = RequestState.PENDING
        self._total_retries += 1
        self._queue.push_retry(request)

        reason = (
            f"{type(event.error).__name__}: {event.error}"
            if event.error is not None
            else f"HTTP {event.response.status_code if event.response else '?'}"
        )
        backoff = self._config.retry_backoff_seconds * request.retry_count
        bind_task(request.id, request.descriptor.method, request.descriptor.url).warning(
            "Request failed ({}), retry {}/{} in {:.2f}s",
            reason,
            request.retry_count,
            self._config.max_retries,
            backoff,
        )
        self._pause(backoff, PauseReason.BACKOFF)

    def _succeed(self, request: QueuedRequest, response: httpx.Response) -> None:
        request.state = RequestState.COMPLETED
        request.completed_at = datetime.now(UTC)
        self._total_completed += 1
        if not request.future.done():
            request.future.set_result(response)

    def _fail(self, request: QueuedRequest, error: Exception) -> None:
        request.state = RequestState.FAILED
        request.completed_at = datetime.now(UTC)
        self._total_failed += 1

        bind_task(request.id, request.descriptor.method, request.descriptor.url).error(
            "Request failed permanently after {} attempt(s): {}", request.attempts, error
        )
        if not request.future.done():
            request.future.set_exception(error)

    # -------------------------------------------------------------------------
    # Pausing
    # -------------------------------------------------------------------------
    def _pause(self, seconds: float, reason: PauseReason) -> None:
        """Pause dispatching; the longest pending pause wins."""
        loop = asyncio.get_running_loop()
        if not self._throttle.pause(loop.time(), seconds, reason):
            return

        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(
            max(0.0, seconds),
            self._events.put_nowait,
            _TimerFired(self._throttle.generation),
        )
        logger.info("Pausing requests for {:.2f}s ({})", seconds, reason.value)

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    @property
    def config(self) -> SchedulerConfig:
        """Scheduler configuration."""
        return self._config

    @property
    def cookies(self) -> httpx.Cookies:
        """Session cookie jar shared by every dispatched request."""
        return self._cookies

    @property
    def queue_size(self) -> int:
        """Number of requests waiting to be dispatched."""
        return len(self._queue) + self._unprocessed_submissions

    @property
    def in_flight(self) -> int:
        """Number of requests currently on the network."""
        return len(self._in_flight)

    @property
    def is_idle(self) -> bool:
        """True if no pending or in-flight requests."""
        return self.queue_size == 0 and self.in_flight == 0 and self._events.empty()

    @property
    def is_throttled(self) -> bool:
        """True while a cooldown, rate-window or backoff pause is in effect."""
        return self._throttle.active

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics.

        Returns:
            Dict with queue_size, in_flight, throttle state and totals
        """
        return {
            "queue_size": self.queue_size,
            "in_flight": self.in_flight,
            "available_slots": self._available_slots,
            "is_running": self._running,
            "is_idle": self.is_idle,
            "is_throttled": self.is_throttled,
            "pause_reason": self._throttle.reason.value if self._throttle.reason else None,
            "window_remaining": self._window.remaining,
            "cooldown_countdown": self._cooldown.countdown if self._cooldown.enabled else None,
            "max_concurrent": self._config.max_concurrent_requests,
            "total_submitted": self._total_submitted,
            "total_dispatched": self._total_dispatched,
            "total_completed": self._total_completed,
            "total_failed": self._total_failed,
            "total_retries": self._total_retries,
        }
