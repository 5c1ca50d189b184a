"""Versionista client module.

This module provides:
- VersionistaClient: Session-holding async client
- Request scheduling: RequestScheduler, RateWindow, Cooldown, Throttle
- Batch fetching: BatchFetcher, BatchResult, fetch_all
- The HTTP execution primitive: HttpExecutor
"""

from .client import VersionistaClient
from .exceptions import (
    RetriesExhaustedError,
    SchedulerClosedError,
    VersionistaAuthenticationError,
    VersionistaClientError,
)
from .pacing import (
    BatchFetcher,
    BatchResult,
    Cooldown,
    PauseReason,
    RateWindow,
    RequestScheduler,
    RequestState,
    Throttle,
    fetch_all,
)
from .schemas import RequestDescriptor
from .transport import (
    Executor,
    HttpExecutor,
    RetryPredicate,
    is_connection_reset,
    retry_on_gateway_error,
)

__all__ = [
    # Client
    "VersionistaClient",
    "RequestDescriptor",
    # Exceptions
    "RetriesExhaustedError",
    "SchedulerClosedError",
    "VersionistaAuthenticationError",
    "VersionistaClientError",
    # Transport
    "Executor",
    "HttpExecutor",
    "RetryPredicate",
    "is_connection_reset",
    "retry_on_gateway_error",
    # Scheduling
    "Cooldown",
    "PauseReason",
    "RateWindow",
    "RequestScheduler",
    "RequestState",
    "Throttle",
    # Batch fetching
    "BatchFetcher",
    "BatchResult",
    "fetch_all",
]
