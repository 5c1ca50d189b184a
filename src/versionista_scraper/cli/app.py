"""Main CLI application for the Versionista scraper."""

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from versionista_scraper import __version__
from versionista_scraper.cli import fetch as fetch_cmd
from versionista_scraper.cli.common import console
from versionista_scraper.config import get_settings
from versionista_scraper.logging import setup_logging

app = typer.Typer(
    name="versionista",
    help="Paced, retrying HTTP client for scraping Versionista.",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"versionista version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-error output (WARNING level).",
        ),
    ] = False,
) -> None:
    """Versionista scraper - fetch pages through a throttled session."""
    settings = get_settings()
    log_config = settings.logging

    setup_logging(
        level=settings.log_level,
        verbose=verbose,
        quiet=quiet,
        log_file=Path(log_config.log_file) if log_config.log_file else None,
        rotation=log_config.rotation,
        retention=log_config.retention,
        serialize=log_config.serialize,
    )


@app.command("config")
def show_config() -> None:
    """Show the effective request scheduler configuration."""
    settings = get_settings()
    scheduler = settings.scheduler

    table = Table(title="Request scheduler")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Base URL", settings.base_url)
    table.add_row("Max concurrent requests", str(scheduler.max_concurrent_requests))
    table.add_row(
        "Cooldown",
        f"{scheduler.sleep_for_seconds}s every {scheduler.sleep_every} requests"
        if scheduler.cooldown_enabled
        else "disabled",
    )
    table.add_row(
        "Rate window",
        f"{scheduler.max_per_window} per {scheduler.window_seconds}s"
        if scheduler.window_limited
        else "unlimited",
    )
    table.add_row("Max retries", str(scheduler.max_retries))
    table.add_row("Retry backoff", f"{scheduler.retry_backoff_seconds}s x attempt")
    table.add_row("Credentials", "configured" if settings.has_credentials else "missing")

    console.print(table)


app.command("fetch")(fetch_cmd.fetch_urls)


if __name__ == "__main__":
    app()
