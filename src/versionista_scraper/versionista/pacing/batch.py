"""Batch fetching through the request scheduler.

This module submits many requests at once and lets the scheduler pace
them, collecting responses and failures in input order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import httpx

from versionista_scraper.logging import get_logger
from versionista_scraper.versionista.schemas import RequestDescriptor

from .scheduler import RequestScheduler

logger = get_logger(__name__)

ResultCallback = Callable[[RequestDescriptor, httpx.Response | None, Exception | None], None]


@dataclass
class BatchResult:
    """Result of a batch fetch.

    ``succeeded`` holds (index, response) pairs and ``failed`` holds
    (index, error) pairs, where index is the position in the input.
    """

    succeeded: list[tuple[int, httpx.Response]] = field(default_factory=list)
    failed: list[tuple[int, Exception]] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        """Total number of requests processed."""
        return len(self.succeeded) + len(self.failed)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def all_succeeded(self) -> bool:
        """Whether every request succeeded."""
        return len(self.failed) == 0

    @property
    def responses(self) -> list[httpx.Response]:
        """Successful responses in input order."""
        return [response for _, response in sorted(self.succeeded, key=lambda pair: pair[0])]


class BatchFetcher:
    """Submits a batch of requests to a scheduler and gathers the outcomes.

    Usage:
        fetcher = BatchFetcher(client.scheduler)
        result = await fetcher.fetch([RequestDescriptor(url=u) for u in urls])

        print(f"Fetched {result.success_count} pages")
        for index, error in result.failed:
            print(urls[index], error)
    """

    def __init__(
        self,
        scheduler: RequestScheduler,
        *,
        stop_on_error: bool = False,
        on_result: ResultCallback | None = None,
    ) -> None:
        """Initialize the batch fetcher.

        Args:
            scheduler: RequestScheduler that paces the requests
            stop_on_error: If True, stop submitting after the first failure
            on_result: Optional callback invoked as each request settles
        """
        self._scheduler = scheduler
        self._stop_on_error = stop_on_error
        self._on_result = on_result
        self._cancelled = False

    async def fetch(
        self,
        descriptors: Sequence[RequestDescriptor],
        *,
        priority: bool = False,
        no_retry: bool = False,
    ) -> BatchResult:
        """Fetch every descriptor and collect the outcomes.

        With ``stop_on_error`` requests are submitted one at a time, so no
        further request is queued once one fails. Otherwise everything is
        queued up front and the scheduler handles pacing.

        Args:
            descriptors: Requests to issue
            priority: Queue the batch ahead of pending normal requests
            no_retry: Attempt each request once

        Returns:
            BatchResult with successes and failures keyed by input index
        """
        self._cancelled = False
        result = BatchResult()

        if not descriptors:
            return result

        if self._stop_on_error:
            for index, descriptor in enumerate(descriptors):
                if self._cancelled:
                    break
                if not await self._fetch_one(result, index, descriptor, priority, no_retry):
                    logger.info("Stopping batch after failure at item {}", index)
                    break
            return result

        await asyncio.gather(
            *(
                self._fetch_one(result, index, descriptor, priority, no_retry)
                for index, descriptor in enumerate(descriptors)
            )
        )
        return result

    async def _fetch_one(
        self,
        result: BatchResult,
        index: int,
        descriptor: RequestDescriptor,
        priority: bool,
        no_retry: bool,
    ) -> bool:
        """Fetch a single descriptor, recording its outcome.

        Returns:
            True if the request succeeded
        """
        if self._cancelled:
            return False

        try:
            response = await self._scheduler.submit(
                descriptor,
                priority=priority,
                no_retry=no_retry,
            )
        except Exception as e:
            result.failed.append((index, e))
            self._notify(descriptor, None, e)
            return False

        result.succeeded.append((index, response))
        self._notify(descriptor, response, None)
        return True

    def _notify(
        self,
        descriptor: RequestDescriptor,
        response: httpx.Response | None,
        error: Exception | None,
    ) -> None:
        if self._on_result is not None:
            self._on_result(descriptor, response, error)

    def cancel(self) -> None:
        """Cancel the batch.

        Requests already queued still complete, but their results are
        recorded only if submitted before cancellation.
        """
        self._cancelled = True
        logger.info("Batch fetch cancelled")

    @property
    def is_cancelled(self) -> bool:
        """Whether the batch has been cancelled."""
        return self._cancelled


async def fetch_all(
    scheduler: RequestScheduler,
    descriptors: Sequence[RequestDescriptor],
    *,
    priority: bool = False,
    no_retry: bool = False,
    stop_on_error: bool = False,
    on_result: ResultCallback | None = None,
) -> BatchResult:
    """Convenience function for one-off batch fetching.

    Args:
        scheduler: RequestScheduler that paces the requests
        descriptors: Requests to issue
        priority: Queue the batch ahead of pending normal requests
        no_retry: Attempt each request once
        stop_on_error: If True, stop after the first failure
        on_result: Optional callback invoked as each request settles

    Returns:
        BatchResult with successes and failures keyed by input index
    """
    fetcher = BatchFetcher(scheduler, stop_on_error=stop_on_error, on_result=on_result)
    return await fetcher.fetch(descriptors, priority=priority, no_retry=no_retry)
