"""Probe run entry point.

Wires the configured probes into one run group:

1. signal listener (SIGINT/SIGTERM)
2. metrics server on ``--listen``
3. deadline, when ``--duration`` is non-zero
4. writer, when a write endpoint is set
5. reader, when both a read and a write endpoint are set
6. query reader, when a read endpoint and named queries are set

Probe actors share one stop signal. Whichever actor returns first interrupts
the rest; writer and reader then drain and report their verdicts, and any
failing verdict fails the whole run.

Usage:
    config = load_config(endpoint_write="http://localhost:9090/api/v1/write")
    anyio.run(run_up, config)
"""

import logging
from functools import partial

import anyio
import httpx
from prometheus_client import CollectorRegistry
from whenever import TimeDelta

from up.group import RunGroup
from up.metrics import ProbeMetrics, register_metrics
from up.models import QuerySpec, UpConfig
from up.probes import generate, query, read, write
from up.runner import PeriodicRunner, QueryLoop
from up.server import MetricsServer, SignalListener
from up.tokens import BearerAuth

logger = logging.getLogger(__name__)

# Upper bound for a single named query; periodic probes are bounded by their period.
DEFAULT_HTTP_TIMEOUT = httpx.Timeout(30.0)


async def _stop_after(stop: anyio.Event, seconds: float) -> None:
    with anyio.move_on_after(seconds):
        await stop.wait()
    logger.info("Run duration of %.0fs elapsed", seconds)
    stop.set()


async def _after_initial_delay(
    stop: anyio.Event, delay: float, runner: PeriodicRunner
) -> float | None:
    logger.info("Waiting for initial delay before querying for metrics")
    with anyio.move_on_after(delay):
        await stop.wait()
    if stop.is_set():
        return None

    logger.info("Start querying for metrics")
    return await runner.run(stop)


def add_probes(
    group: RunGroup,
    config: UpConfig,
    client: httpx.AsyncClient,
    metrics: ProbeMetrics,
    stop: anyio.Event,
) -> None:
    """Register the deadline and probe actors of ``config`` on ``group``."""

    def interrupt(_: BaseException | None) -> None:
        stop.set()

    period = config.period.total_seconds()

    if config.duration:
        group.add(
            partial(_stop_after, stop, config.duration.total_seconds()),
            interrupt,
            name="deadline",
        )

    if config.endpoint_write is not None:
        endpoint_write = str(config.endpoint_write)
        labels = config.series_labels

        async def write_probe() -> None:
            await write(client, endpoint_write, generate(labels))

        writer = PeriodicRunner(
            "writer", period, write_probe, metrics.remote_writes, config.threshold
        )
        logger.info("Starting the writer: endpoint=%s", endpoint_write)
        group.add(partial(writer.run, stop), interrupt, name="writer")
    else:
        logger.info("No write endpoint specified, no write tests being performed")

    if config.endpoint_read is None:
        logger.info("No read endpoint specified, no read tests being performed")
        return

    endpoint_read = str(config.endpoint_read)

    if config.endpoint_write is not None:
        labels = config.series_labels
        ago = TimeDelta(seconds=config.initial_query_delay.total_seconds())
        latency = TimeDelta(seconds=config.latency.total_seconds())

        async def read_probe() -> None:
            await read(
                client, endpoint_read, labels, ago, latency, metrics.metric_value_difference
            )

        reader = PeriodicRunner("reader", period, read_probe, metrics.queries, config.threshold)
        logger.info("Starting the reader: endpoint=%s", endpoint_read)
        group.add(
            partial(
                _after_initial_delay, stop, config.initial_query_delay.total_seconds(), reader
            ),
            interrupt,
            name="reader",
        )

    if config.queries:
        logger.info("%d queries configured to be queried periodically", len(config.queries))

        async def query_probe(spec: QuerySpec) -> list[str]:
            return await query(client, endpoint_read, spec)

        loop = QueryLoop(
            config.queries,
            query_probe,
            metrics.custom_queries,
            initial_delay=config.initial_query_delay.total_seconds(),
        )
        logger.info("Starting the reader for queries")
        group.add(partial(loop.run, stop), interrupt, name="query-reader")


async def run_up(
    config: UpConfig,
    registry: CollectorRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Run every configured probe until the duration elapses or a signal arrives.

    Raises:
        VerdictError: a probe kind ended below the success threshold.
        Exception: any other actor failure, e.g. the metrics server could not bind.
    """
    registry = registry if registry is not None else CollectorRegistry()
    metrics = register_metrics(registry)
    stop = anyio.Event()

    group = RunGroup()

    signals = SignalListener()
    group.add(signals.run, signals.interrupt, name="signal")

    host, port = config.listen_address
    server = MetricsServer(registry, host, port)
    group.add(server.run, server.interrupt, name="http")

    async with httpx.AsyncClient(
        auth=BearerAuth(config.token_provider()),
        timeout=DEFAULT_HTTP_TIMEOUT,
        transport=transport,
    ) as client:
        add_probes(group, config, client, metrics, stop)
        await group.run()
