"""Tests for the remote-write, read and named query probes."""

import json
import time
from urllib.parse import parse_qs

import httpx
import pytest
import snappy
from whenever import Instant, TimeDelta

from up.errors import QueryError, ReadError, WriteError
from up.metrics import ProbeMetrics
from up.models import Label, QuerySpec
from up.probes import (
    REMOTE_WRITE_HEADERS,
    WriteRequest,
    encode,
    format_time,
    generate,
    query,
    query_url,
    read,
    unix_seconds,
    write,
)

pytestmark = pytest.mark.anyio

WRITE_ENDPOINT = "http://receive:19291/api/v1/receive"
READ_ENDPOINT = "http://query:9090/api/v1/query"
LABELS = (Label(name="env", value="test"), Label(name="__name__", value="up"))


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _vector(*values_ms: float) -> dict:
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {"metric": {"__name__": "up"}, "value": [time.time(), str(value)]}
                for value in values_ms
            ],
        },
    }


def _now_ms(ago_seconds: float = 0.0) -> float:
    return (time.time() - ago_seconds) * 1000


# =============================================================================
# REMOTE WRITE
# =============================================================================


class TestGenerate:
    def test_value_and_timestamp_are_the_write_time(self):
        now = Instant.from_timestamp(1_700_000_000)

        request = generate(LABELS, now)

        assert len(request.timeseries) == 1
        series = request.timeseries[0]
        assert [(label.name, label.value) for label in series.labels] == [
            ("env", "test"),
            ("__name__", "up"),
        ]
        assert len(series.samples) == 1
        assert series.samples[0].timestamp == 1_700_000_000_000
        assert series.samples[0].value == 1_700_000_000_000.0

    def test_encoding_is_snappy_framed_protobuf(self):
        request = generate(LABELS)

        decoded = WriteRequest.FromString(snappy.decompress(encode(request)))

        assert decoded == request


class TestWrite:
    async def test_posts_encoded_request_with_headers(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        request = generate(LABELS)
        async with _client(handler) as client:
            await write(client, WRITE_ENDPOINT, request)

        sent = seen[0]
        assert sent.method == "POST"
        assert str(sent.url) == WRITE_ENDPOINT
        for name, value in REMOTE_WRITE_HEADERS.items():
            assert sent.headers[name] == value
        assert WriteRequest.FromString(snappy.decompress(sent.content)) == request

    async def test_non_2xx_status_is_an_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with _client(handler) as client:
            with pytest.raises(WriteError, match="non-2xx status: 503"):
                await write(client, WRITE_ENDPOINT, generate(LABELS))

    async def test_transport_failure_is_an_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(WriteError, match="making request"):
                await write(client, WRITE_ENDPOINT, generate(LABELS))


# =============================================================================
# READ
# =============================================================================


class TestRead:
    async def test_fresh_sample_passes(self, metrics: ProbeMetrics, registry):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_vector(_now_ms(ago_seconds=1)))

        async with _client(handler) as client:
            age = await read(
                client,
                READ_ENDPOINT,
                LABELS,
                TimeDelta(seconds=5),
                TimeDelta(seconds=15),
                metrics.metric_value_difference,
            )

        assert 0 <= age < 15
        assert registry.get_sample_value("up_metric_value_difference_count") == 1

        form = parse_qs(seen[0].content.decode())
        assert seen[0].method == "POST"
        assert form["query"] == ['{env="test",__name__="up"}']
        assert float(form["time"][0]) == pytest.approx(time.time() - 5, abs=2)

    async def test_stale_sample_fails(self, metrics: ProbeMetrics, registry):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_vector(_now_ms(ago_seconds=60)))

        async with _client(handler) as client:
            with pytest.raises(ReadError, match="metric value is too old"):
                await read(
                    client,
                    READ_ENDPOINT,
                    LABELS,
                    TimeDelta(seconds=5),
                    TimeDelta(seconds=15),
                    metrics.metric_value_difference,
                )

        assert registry.get_sample_value("up_metric_value_difference_count") == 1

    @pytest.mark.parametrize("count", [0, 2])
    async def test_exactly_one_series_is_expected(self, metrics: ProbeMetrics, count: int):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_vector(*[_now_ms()] * count))

        async with _client(handler) as client:
            with pytest.raises(ReadError, match=f"expected one metric, got {count}"):
                await read(
                    client,
                    READ_ENDPOINT,
                    LABELS,
                    TimeDelta(seconds=5),
                    TimeDelta(seconds=15),
                    metrics.metric_value_difference,
                )

    async def test_non_vector_result_fails(self, metrics: ProbeMetrics):
        def handler(request: httpx.Request) -> httpx.Response:
            body = {"status": "success", "data": {"resultType": "scalar", "result": [1, "2"]}}
            return httpx.Response(200, json=body)

        async with _client(handler) as client:
            with pytest.raises(ReadError, match="expected a vector result, got scalar"):
                await read(
                    client,
                    READ_ENDPOINT,
                    LABELS,
                    TimeDelta(seconds=5),
                    TimeDelta(seconds=15),
                    metrics.metric_value_difference,
                )

    async def test_falls_back_to_get_on_405(self, metrics: ProbeMetrics):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.method == "POST":
                return httpx.Response(405)
            return httpx.Response(200, json=_vector(_now_ms()))

        async with _client(handler) as client:
            await read(
                client,
                READ_ENDPOINT,
                LABELS,
                TimeDelta(seconds=5),
                TimeDelta(seconds=15),
                metrics.metric_value_difference,
            )

        assert [request.method for request in seen] == ["POST", "GET"]
        assert seen[1].url.params["query"] == '{env="test",__name__="up"}'

    async def test_server_error_fails(self, metrics: ProbeMetrics):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="internal error")

        async with _client(handler) as client:
            with pytest.raises(ReadError, match="500"):
                await read(
                    client,
                    READ_ENDPOINT,
                    LABELS,
                    TimeDelta(seconds=5),
                    TimeDelta(seconds=15),
                    metrics.metric_value_difference,
                )


# =============================================================================
# NAMED QUERIES
# =============================================================================


class TestQuery:
    async def test_success_returns_warnings(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = {
                "status": "success",
                "data": {"resultType": "vector", "result": []},
                "warnings": ["partial response"],
            }
            return httpx.Response(200, json=body, headers={"X-Thanos-Trace-Id": "abc"})

        spec = QuerySpec(name="rate", query="sum(rate(up[5m]))")
        async with _client(handler) as client:
            warnings = await query(client, "http://query:9090/some/other/path", spec)

        assert warnings == ["partial response"]
        assert seen[0].url.path == "/api/v1/query"
        assert parse_qs(seen[0].content.decode())["query"] == ["sum(rate(up[5m]))"]

    async def test_error_status_carries_warnings(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = {
                "status": "error",
                "errorType": "bad_data",
                "error": "invalid parameter",
                "warnings": ["store unavailable"],
            }
            return httpx.Response(400, content=json.dumps(body))

        async with _client(handler) as client:
            with pytest.raises(QueryError, match="bad_data: invalid parameter") as exc_info:
                await query(client, READ_ENDPOINT, QuerySpec(name="q", query="up"))

        assert exc_info.value.warnings == ["store unavailable"]

    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(QueryError, match="querying"):
                await query(client, READ_ENDPOINT, QuerySpec(name="q", query="up"))


class TestHelpers:
    def test_query_url_replaces_path(self):
        url = query_url("https://thanos.example.com:10902/api/v1/receive")

        assert str(url) == "https://thanos.example.com:10902/api/v1/query"

    def test_format_time_is_fractional_seconds(self):
        instant = Instant.from_timestamp(1_700_000_000) + TimeDelta(milliseconds=500)

        assert format_time(instant) == "1700000000.5"

    def test_unix_seconds_keeps_sub_second_precision(self):
        instant = Instant.from_timestamp(1_700_000_000) + TimeDelta(milliseconds=250)

        assert unix_seconds(instant) == 1_700_000_000.25
