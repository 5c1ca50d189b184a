"""Request pacing and scheduling for Versionista.

This module keeps outbound requests within the upstream's tolerance:
bounded concurrency, a fixed-window request cap, periodic cooldown
pauses, and bounded retries of transient failures.

Components:
- RequestScheduler: Admission loop enforcing all throttles
- RateWindow, Cooldown, Throttle: The individual throttle primitives
- BatchFetcher: Submits many requests and gathers the outcomes
"""

from .batch import BatchFetcher, BatchResult, fetch_all
from .scheduler import QueuedRequest, RequestScheduler, RequestState
from .throttle import Cooldown, PauseReason, RateWindow, Throttle

__all__ = [
    # Batch fetching
    "BatchFetcher",
    "BatchResult",
    "fetch_all",
    # Scheduling
    "QueuedRequest",
    "RequestScheduler",
    "RequestState",
    # Throttles
    "Cooldown",
    "PauseReason",
    "RateWindow",
    "Throttle",
]
