"""up - synthetic monitoring probe for Prometheus-compatible metrics pipelines.

Writes a marker series through remote write, reads it back through the query
API to check freshness, and optionally runs named PromQL queries in a loop.
Each probe kind reduces its outcomes to a pass/fail verdict.

Quick Start:
    import anyio
    from up.models import load_config
    from up.worker import run_up

    config = load_config(
        endpoint_write="http://localhost:9090/api/v1/write",
        endpoint_read="http://localhost:9090/api/v1/query",
        duration="1m",
    )
    anyio.run(run_up, config)
"""

__version__ = "0.1.0"
