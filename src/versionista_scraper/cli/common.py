"""Common CLI option factories and helpers.

This module centralizes reusable CLI options and provides
`run_async_command` for executing async code with unified error handling.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Annotated, TypeVar

import typer
from rich.console import Console

from versionista_scraper.config import SchedulerConfig

# Shared console instance for CLI output
console = Console()

T = TypeVar("T")


def run_async_command(
    coro: Coroutine[object, object, T],
    *,
    error_prefix: str = "Error",
) -> T:
    """Execute async code from synchronous CLI command with unified error handling.

    Uses asyncio.run() for clean event loop management. Catches exceptions,
    prints user-friendly error messages, and exits with code 1.

    Args:
        coro: Async coroutine to execute
        error_prefix: Prefix for error messages (default: "Error")

    Returns:
        Result from the coroutine

    Raises:
        typer.Exit: Re-raised from deliberate exits, or raised with code 1 on error
    """
    try:
        return asyncio.run(coro)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]{error_prefix}:[/red] {e}")
        raise typer.Exit(1) from None


# Options shared by several commands, as Annotated aliases.

PriorityOption = Annotated[
    bool,
    typer.Option(
        "--priority",
        help="Queue requests ahead of other pending requests",
    ),
]

NoRetryOption = Annotated[
    bool,
    typer.Option(
        "--no-retry",
        help="Attempt each request once, without retrying gateway errors",
    ),
]

MaxConcurrentOption = Annotated[
    int | None,
    typer.Option(
        "--max-concurrent",
        "-c",
        min=1,
        help="Override the maximum number of requests in flight",
    ),
]

MaxPerMinuteOption = Annotated[
    int | None,
    typer.Option(
        "--max-per-minute",
        "-m",
        min=0,
        help="Override the per-minute request cap (0 = unlimited)",
    ),
]


def scheduler_overrides(
    base: SchedulerConfig,
    *,
    max_concurrent: int | None = None,
    max_per_minute: int | None = None,
) -> SchedulerConfig:
    """Apply CLI overrides to a scheduler configuration.

    A per-minute override also pins the rate window to 60 seconds.

    Args:
        base: Configuration from settings
        max_concurrent: Optional concurrency override
        max_per_minute: Optional per-minute cap override

    Returns:
        New SchedulerConfig with overrides applied
    """
    updates: dict[str, int | float] = {}
    if max_concurrent is not None:
        updates["max_concurrent_requests"] = max_concurrent
    if max_per_minute is not None:
        updates["max_per_window"] = max_per_minute
        updates["window_seconds"] = 60.0
    if not updates:
        return base
    return SchedulerConfig.model_validate({**base.model_dump(), **updates})
