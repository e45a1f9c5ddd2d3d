"""Typer CLI for the up probe.

Every option can also be set through an ``UP_<OPTION>`` environment
variable (e.g. ``UP_ENDPOINT_WRITE``); options given on the command line win.
Durations use Go syntax: ``5s``, ``1m30s``, ``250ms``.
"""

from __future__ import annotations

import logging
from pathlib import Path  # noqa: TC003 - Typer evaluates type hints at runtime
from typing import Annotated

import anyio
import typer
from rich.console import Console

from up.errors import ConfigError
from up.models import LogLevel, load_config
from up.worker import run_up

app = typer.Typer(
    name="up",
    help="Synthetic probe writing to and reading from a Prometheus-compatible metrics pipeline",
    no_args_is_help=False,
)
console = Console(stderr=True)
logger = logging.getLogger("up")

_LOG_LEVELS: dict[str, int] = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def configure_logging(level: LogLevel) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS[level],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def main(
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log.level", "--log-level", help="Log filtering level: error, warn, info, debug"
        ),
    ] = None,
    endpoint_write: Annotated[
        str | None,
        typer.Option("--endpoint-write", help="The endpoint to make remote-write requests to"),
    ] = None,
    endpoint_read: Annotated[
        str | None,
        typer.Option("--endpoint-read", help="The endpoint to make query requests to"),
    ] = None,
    labels: Annotated[
        str | None,
        typer.Option(
            "--labels",
            help="Labels in addition to '__name__' applied to remote-write requests, "
            'e.g. foo="bar",baz="qux"',
        ),
    ] = None,
    listen: Annotated[
        str | None, typer.Option("--listen", help="The address the internal server runs on")
    ] = None,
    name: Annotated[
        str | None, typer.Option("--name", help="The name of the metric to remote-write")
    ] = None,
    token: Annotated[
        str | None,
        typer.Option(
            "--token",
            help="Bearer token for outgoing requests. Takes precedence over --token-file",
        ),
    ] = None,
    token_file: Annotated[
        Path | None,
        typer.Option("--token-file", help="File to read the bearer token from on each request"),
    ] = None,
    queries_file: Annotated[
        Path | None,
        typer.Option("--queries-file", help="YAML file of queries to run on the read endpoint"),
    ] = None,
    period: Annotated[
        str | None, typer.Option("--period", help="Time between remote-write requests")
    ] = None,
    duration: Annotated[
        str | None,
        typer.Option("--duration", help="How long to run. 0 runs until the process is terminated"),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Ratio of successful requests needed to succeed, 0 - 1"),
    ] = None,
    latency: Annotated[
        str | None,
        typer.Option("--latency", help="Maximum allowable latency between writing and reading"),
    ] = None,
    initial_query_delay: Annotated[
        str | None,
        typer.Option("--initial-query-delay", help="Time to wait before the first query"),
    ] = None,
) -> None:
    """Write a marker series, read it back, and fail if too many probes failed."""
    try:
        config = load_config(
            log_level=log_level,
            endpoint_write=endpoint_write,
            endpoint_read=endpoint_read,
            labels=labels,
            listen=listen,
            name=name,
            token=token,
            token_file=token_file,
            queries_file=queries_file,
            period=period,
            duration=duration,
            threshold=threshold,
            latency=latency,
            initial_query_delay=initial_query_delay,
        )
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] could not parse command line flags: {exc}")
        raise typer.Exit(1) from None

    configure_logging(config.log_level)

    try:
        anyio.run(run_up, config)
    except Exception as exc:
        logger.error("Run group exited with error: %s", exc)
        raise typer.Exit(1) from None

    logger.info("up completed its mission!")


if __name__ == "__main__":
    app()
