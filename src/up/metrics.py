"""Prometheus metrics exposed by the probe.

The outcome counters double as the source of the final verdicts: each
periodic runner reads a snapshot of its own counter once it has drained.
Metric names are kept stable for existing dashboards and alerts.
"""

from dataclasses import dataclass

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
)

from up.models import OutcomeSnapshot

SUCCESS = "success"
ERROR = "error"

# 4s, 4.25s, ... 7.75s
METRIC_VALUE_DIFFERENCE_BUCKETS = tuple(4 + 0.25 * i for i in range(16))


class OutcomeCounters:
    """Success/error tally of one probe kind, backed by a ``result`` labelled counter."""

    def __init__(self, counter: Counter) -> None:
        self._counter = counter

    def success(self) -> None:
        self._counter.labels(result=SUCCESS).inc()

    def error(self) -> None:
        self._counter.labels(result=ERROR).inc()

    def snapshot(self) -> OutcomeSnapshot:
        """Read the current counts. Unseen outcomes count as zero."""
        counts = {SUCCESS: 0, ERROR: 0}
        for family in self._counter.collect():
            for sample in family.samples:
                if sample.name.endswith("_total") and sample.labels.get("result") in counts:
                    counts[sample.labels["result"]] = int(sample.value)
        return OutcomeSnapshot(successes=counts[SUCCESS], errors=counts[ERROR])


class QueryMetrics:
    """Per-query-name execution, error and duration metrics of the query loop."""

    def __init__(self, executed: Counter, errors: Counter, last_duration: Gauge) -> None:
        self.executed = executed
        self.errors = errors
        self.last_duration = last_duration

    def record(self, name: str, duration: float, ok: bool) -> None:
        self.executed.labels(query=name).inc()
        self.last_duration.labels(query=name).set(duration)
        if not ok:
            self.errors.labels(query=name).inc()


@dataclass(frozen=True)
class ProbeMetrics:
    remote_writes: OutcomeCounters
    queries: OutcomeCounters
    metric_value_difference: Histogram
    custom_queries: QueryMetrics


def register_metrics(registry: CollectorRegistry) -> ProbeMetrics:
    """Create all probe metrics and register them, with process collectors, on ``registry``."""
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)

    return ProbeMetrics(
        remote_writes=OutcomeCounters(
            Counter(
                "up_remote_writes",
                "Total number of remote write requests.",
                ["result"],
                registry=registry,
            )
        ),
        queries=OutcomeCounters(
            Counter(
                "up_queries",
                "The total number of queries made.",
                ["result"],
                registry=registry,
            )
        ),
        metric_value_difference=Histogram(
            "up_metric_value_difference",
            "The time difference between the current timestamp and the timestamp "
            "in the metrics value.",
            buckets=METRIC_VALUE_DIFFERENCE_BUCKETS,
            registry=registry,
        ),
        custom_queries=QueryMetrics(
            executed=Counter(
                "up_custom_query_executed",
                "The total number of custom specified queries executed.",
                ["query"],
                registry=registry,
            ),
            errors=Counter(
                "up_custom_query_errors",
                "The total number of custom specified queries that failed.",
                ["query"],
                registry=registry,
            ),
            last_duration=Gauge(
                "up_custom_query_last_duration",
                "The duration of the query execution last time the query was executed.",
                ["query"],
                registry=registry,
            ),
        ),
    )
