"""Query API probes: the freshness read probe and named custom queries.

Both talk to the Prometheus HTTP query API. Requests are sent as a
form-encoded POST and retried as a GET when the server answers
``405 Method Not Allowed`` (some query frontends only accept GET).

Date/Time: Uses `whenever` library (UTC-first, Rust-backed).
"""

import logging

import httpx
from prometheus_client import Histogram
from pydantic import ValidationError
from whenever import Instant, TimeDelta

from up.errors import ProbeError, QueryError, ReadError
from up.models import Label, QueryResponse, QueryResult, QuerySpec, selector

logger = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/query"
TRACE_ID_HEADER = "X-Thanos-Trace-Id"


UNIX_EPOCH = Instant.from_timestamp(0)


def unix_seconds(instant: Instant) -> float:
    return (instant - UNIX_EPOCH).total("seconds")


def format_time(instant: Instant) -> str:
    """Format an instant as fractional Unix seconds, as the query API expects."""
    return str(unix_seconds(instant))


async def post_with_get_fallback(
    client: httpx.AsyncClient,
    url: str | httpx.URL,
    params: dict[str, str],
) -> httpx.Response:
    """POST ``params`` as a form; on 405 repeat them as a GET query string."""
    response = await client.post(url, data=params)
    if response.status_code == httpx.codes.METHOD_NOT_ALLOWED:
        logger.debug("POST not allowed on %s, falling back to GET", url)
        response = await client.get(url, params=params)
    return response


def decode_response(response: httpx.Response, error: type[ProbeError]) -> QueryResponse:
    """Parse the JSON envelope and fail on error statuses."""
    try:
        payload = QueryResponse.model_validate_json(response.content)
    except ValidationError as exc:
        if not response.is_success:
            raise error(f"{response.status_code} {response.reason_phrase}") from exc
        raise error(f"query response parse failed: {exc}") from exc

    if not response.is_success or payload.status != "success":
        kind = payload.error_type or str(response.status_code)
        raise error(f"{kind}: {payload.error or response.reason_phrase}")
    return payload


async def read(
    client: httpx.AsyncClient,
    endpoint: str,
    labels: tuple[Label, ...],
    ago: TimeDelta,
    latency: TimeDelta,
    value_difference: Histogram,
) -> float:
    """Query the written series back and check how old its last sample is.

    The query is evaluated ``ago`` in the past, where the write probe's sample
    should already have landed. The sample value holds the write time in
    milliseconds; its age is observed on ``value_difference``.

    Returns:
        Age of the sample in seconds.

    Raises:
        ReadError: the request failed, the result is not exactly one series,
            or the sample is older than ``latency``.
    """
    params = {"query": selector(labels), "time": format_time(Instant.now() - ago)}

    try:
        response = await post_with_get_fallback(client, endpoint, params)
    except httpx.HTTPError as exc:
        raise ReadError(f"query request failed: {exc}") from exc

    payload = decode_response(response, ReadError)
    try:
        result = QueryResult.from_response(payload)
    except ValueError as exc:
        raise ReadError(f"query response parse failed: {exc}") from exc

    if result.result_type != "vector":
        raise ReadError(f"expected a vector result, got {result.result_type}")
    if len(result.result) != 1:
        raise ReadError(f"expected one metric, got {len(result.result)}")

    written_at = Instant.from_timestamp(int(result.result[0].sample_value / 1000))
    age = (Instant.now() - written_at).total("seconds")

    value_difference.observe(age)

    if age > latency.total("seconds"):
        raise ReadError(f"metric value is too old: {age:.0f}s")
    return age


def query_url(endpoint: str) -> httpx.URL:
    """Instant query URL on the host of the read endpoint."""
    return httpx.URL(endpoint).copy_with(path=QUERY_PATH)


async def query(client: httpx.AsyncClient, endpoint: str, spec: QuerySpec) -> list[str]:
    """Run a named query as an instant query at the current time.

    No shape validation: the outcome only depends on the transport and the
    response status.

    Returns:
        Warnings returned alongside the result.

    Raises:
        QueryError: the request failed or the server reported an error.
    """
    logger.debug("Running specified query: name=%s query=%s", spec.name, spec.query)

    params = {"query": spec.query, "time": format_time(Instant.now())}
    try:
        response = await post_with_get_fallback(client, query_url(endpoint), params)
    except httpx.HTTPError as exc:
        raise QueryError(f"querying: {exc}") from exc

    try:
        payload = decode_response(response, QueryError)
        result = QueryResult.from_response(payload)
    except (QueryError, ValueError) as exc:
        raise QueryError(f"querying: {exc}", _warnings_of(response)) from exc

    logger.debug(
        "Request finished: name=%s response=%s trace-id=%s",
        spec.name,
        result,
        response.headers.get(TRACE_ID_HEADER, ""),
    )
    return payload.warnings


def _warnings_of(response: httpx.Response) -> list[str]:
    try:
        return QueryResponse.model_validate_json(response.content).warnings
    except ValidationError:
        return []
