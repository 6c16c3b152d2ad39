"""Main CLI entry point for yum-secupdater.

This module defines the Typer application that validates the flags and the
environment, configures logging and runs the daemon until it is signalled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.markup import escape

from secupdater.config import (
    DEFAULT_DRY_RUN,
    DEFAULT_EXCLUDE_PACKAGES,
    DEFAULT_METRICS,
    DEFAULT_METRICS_ADDR,
    DEFAULT_METRICS_INTERVAL,
    DEFAULT_METRICS_PORT,
    DEFAULT_SEVERITIES,
    DEFAULT_UPDATE_INTERVAL,
    DEFAULT_UPDATE_PACKAGES,
    ConfigurationError,
    build_settings,
)
from secupdater.daemon import Daemon

from . import __version__

app = typer.Typer(
    name="yum-secupdater",
    help="Apply yum security updates periodically and export pending updates as metrics.",
    add_completion=False,
    rich_markup_mode="rich",
)

# Diagnostics go to stderr so they never mix with structured log output.
err_console = Console(stderr=True)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(log_level: str, log_format: str = "console") -> None:
    """Configure structlog and standard logging.

    Args:
        log_level: Log level string (debug, info, warning, error).
        log_format: ``console`` for human readable lines, ``json`` for one
                    JSON object per line.
    """
    level = LOG_LEVELS.get(log_level.lower(), logging.INFO)

    # aiohttp and asyncio log through the standard library
    logging.basicConfig(
        format="%(message)s",
        level=level,
        force=True,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"yum-secupdater version {__version__}")
        raise typer.Exit()


@app.command()
def main(
    exclude_packages: Annotated[
        str,
        typer.Option(
            "--exclude-packages",
            help="Names of packages to exclude, separated with a comma.",
        ),
    ] = DEFAULT_EXCLUDE_PACKAGES,
    update_packages: Annotated[
        str,
        typer.Option(
            "--update-packages",
            help="Names of packages to update, separated with a comma. Defaults to all.",
        ),
    ] = DEFAULT_UPDATE_PACKAGES,
    severities: Annotated[
        str,
        typer.Option(
            "--severities",
            help="Security severities to include, separated with a comma. "
            "Allowed values: Low,Moderate,Medium,Important,Critical.",
        ),
    ] = DEFAULT_SEVERITIES,
    interval: Annotated[
        str,
        typer.Option("--interval", help="Interval between updates, e.g. 24h or 1h30m."),
    ] = DEFAULT_UPDATE_INTERVAL,
    metrics: Annotated[
        bool,
        typer.Option("--metrics/--no-metrics", help="Enable the metrics exporter."),
    ] = DEFAULT_METRICS,
    metrics_addr: Annotated[
        str,
        typer.Option("--metrics-addr", help="IP address to expose the HTTP metrics on."),
    ] = DEFAULT_METRICS_ADDR,
    metrics_port: Annotated[
        int,
        typer.Option("--metrics-port", help="Port to expose the HTTP metrics on."),
    ] = DEFAULT_METRICS_PORT,
    metrics_interval: Annotated[
        str,
        typer.Option("--metrics-interval", help="Interval between metrics checks."),
    ] = DEFAULT_METRICS_INTERVAL,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Only check for updates, never apply them."),
    ] = DEFAULT_DRY_RUN,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            "-L",
            help="Log level: debug, info, warning or error.",
            case_sensitive=False,
        ),
    ] = "info",
    log_format: Annotated[
        str,
        typer.Option("--log-format", help="Log renderer: console or json."),
    ] = "console",
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Run the security updater daemon.

    The node identity is read from the [bold]YUMSECUPDATER_NODE_ID[/bold]
    environment variable.
    """
    configure_logging(log_level, log_format)

    try:
        settings = build_settings(
            exclude_packages=exclude_packages,
            update_packages=update_packages,
            severities=severities,
            interval=interval,
            metrics=metrics,
            metrics_addr=metrics_addr,
            metrics_port=metrics_port,
            metrics_interval=metrics_interval,
            dry_run=dry_run,
        )
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    try:
        asyncio.run(Daemon(settings).run())
    except OSError as e:
        # The metrics endpoint could not bind its address.
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    app()
