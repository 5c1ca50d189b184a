"""Fetch command: issue requests through the paced scheduler."""

from typing import Annotated, Any

import httpx
import typer
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from versionista_scraper.cli.common import (
    MaxConcurrentOption,
    MaxPerMinuteOption,
    NoRetryOption,
    PriorityOption,
    console,
    run_async_command,
    scheduler_overrides,
)
from versionista_scraper.config import get_settings
from versionista_scraper.logging import LogContext
from versionista_scraper.versionista import (
    BatchResult,
    RequestDescriptor,
    RetriesExhaustedError,
    VersionistaClient,
    fetch_all,
)


def fetch_urls(
    urls: Annotated[
        list[str],
        typer.Argument(help="URLs, or paths relative to the Versionista base URL"),
    ],
    login: Annotated[
        bool,
        typer.Option("--login", help="Log in with configured credentials first"),
    ] = False,
    priority: PriorityOption = False,
    no_retry: NoRetryOption = False,
    max_concurrent: MaxConcurrentOption = None,
    max_per_minute: MaxPerMinuteOption = None,
) -> None:
    """Fetch URLs through the paced request scheduler.

    Examples:
        versionista fetch https://versionista.com/
        versionista fetch /1234/ /5678/ --login --max-per-minute 30
    """

    async def _fetch() -> tuple[BatchResult, dict[str, Any]]:
        settings = get_settings()
        config = scheduler_overrides(
            settings.scheduler,
            max_concurrent=max_concurrent,
            max_per_minute=max_per_minute,
        )

        with LogContext(command="fetch", url_count=len(urls)):
            async with VersionistaClient(settings, scheduler_config=config) as client:
                if login:
                    await client.log_in()

                descriptors = [RequestDescriptor(url=url) for url in urls]
                with Progress(
                    TextColumn("[bold]Fetching"),
                    BarColumn(),
                    TextColumn("{task.completed}/{task.total}"),
                    console=console,
                    transient=True,
                ) as progress:
                    task_id = progress.add_task("fetch", total=len(descriptors))

                    def on_result(
                        descriptor: RequestDescriptor,
                        response: httpx.Response | None,
                        error: Exception | None,
                    ) -> None:
                        progress.advance(task_id)

                    result = await fetch_all(
                        client.scheduler,
                        descriptors,
                        priority=priority,
                        no_retry=no_retry,
                        on_result=on_result,
                    )
                return result, client.get_stats()

    result, stats = run_async_command(_fetch(), error_prefix="Fetch failed")

    table = Table(title="Fetch results")
    table.add_column("URL", max_width=70)
    table.add_column("Status", justify="right")
    table.add_column("Detail")

    responses = dict(result.succeeded)
    errors = dict(result.failed)
    for index, url in enumerate(urls):
        if index in responses:
            response = responses[index]
            style = "green" if response.is_success else "yellow"
            table.add_row(
                url,
                f"[{style}]{response.status_code}[/{style}]",
                f"{len(response.content)} bytes",
            )
        else:
            error = errors[index]
            status = (
                str(error.status_code) if isinstance(error, RetriesExhaustedError) else "-"
            )
            table.add_row(url, f"[red]{status}[/red]", f"{type(error).__name__}: {error}")

    console.print(table)
    console.print(
        f"Fetched {result.success_count}/{len(urls)} "
        f"(dispatched={stats['total_dispatched']}, retries={stats['total_retries']})"
    )

    if not result.all_succeeded:
        raise typer.Exit(1)
