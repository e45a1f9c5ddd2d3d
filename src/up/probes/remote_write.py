"""Remote-write probe.

Writes a single sample whose value and timestamp are both the current time in
milliseconds. The value is deliberately predictable: the read probe turns it
back into a timestamp to measure how fresh the stored series is.

Wire format: Prometheus remote-write 0.1.0, a protobuf ``WriteRequest``
compressed with snappy (block format). The message types are declared at
import time from a descriptor instead of generated code, since only the
Label/Sample/TimeSeries/WriteRequest subset is needed.

Date/Time: Uses `whenever` library (UTC-first, Rust-backed).
"""

import logging

import httpx
import snappy
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message
from whenever import Instant

from up.errors import WriteError
from up.models import Label
from up.probes.prometheus import unix_seconds

logger = logging.getLogger(__name__)

REMOTE_WRITE_HEADERS = {
    "Content-Encoding": "snappy",
    "Content-Type": "application/x-protobuf",
    "User-Agent": "up",
    "X-Prometheus-Remote-Write-Version": "0.1.0",
}

_F = descriptor_pb2.FieldDescriptorProto


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Describe the subset of ``prometheus/prompb`` used by remote write."""
    fd = descriptor_pb2.FileDescriptorProto(
        name="up/prompb/remote.proto", package="prometheus", syntax="proto3"
    )

    label = fd.message_type.add(name="Label")
    label.field.add(name="name", number=1, type=_F.TYPE_STRING, label=_F.LABEL_OPTIONAL)
    label.field.add(name="value", number=2, type=_F.TYPE_STRING, label=_F.LABEL_OPTIONAL)

    sample = fd.message_type.add(name="Sample")
    sample.field.add(name="value", number=1, type=_F.TYPE_DOUBLE, label=_F.LABEL_OPTIONAL)
    sample.field.add(name="timestamp", number=2, type=_F.TYPE_INT64, label=_F.LABEL_OPTIONAL)

    series = fd.message_type.add(name="TimeSeries")
    series.field.add(
        name="labels",
        number=1,
        type=_F.TYPE_MESSAGE,
        type_name=".prometheus.Label",
        label=_F.LABEL_REPEATED,
    )
    series.field.add(
        name="samples",
        number=2,
        type=_F.TYPE_MESSAGE,
        type_name=".prometheus.Sample",
        label=_F.LABEL_REPEATED,
    )

    write_request = fd.message_type.add(name="WriteRequest")
    write_request.field.add(
        name="timeseries",
        number=1,
        type=_F.TYPE_MESSAGE,
        type_name=".prometheus.TimeSeries",
        label=_F.LABEL_REPEATED,
    )
    return fd


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file_descriptor().SerializeToString())

WriteRequest = message_factory.GetMessageClass(
    _pool.FindMessageTypeByName("prometheus.WriteRequest")
)


def generate(labels: tuple[Label, ...], now: Instant | None = None) -> Message:
    """Build a write request of one series with one sample stamped ``now``."""
    timestamp = round(unix_seconds(now or Instant.now()) * 1000)

    request = WriteRequest()
    series = request.timeseries.add()
    for label in labels:
        series.labels.add(name=label.name, value=label.value)
    series.samples.add(value=float(timestamp), timestamp=timestamp)
    return request


def encode(request: Message) -> bytes:
    """Serialize and snappy-compress a write request."""
    return snappy.compress(request.SerializeToString())


async def write(client: httpx.AsyncClient, endpoint: str, request: Message) -> None:
    """POST a write request. Anything but a 2xx response is an error.

    Raises:
        WriteError: encoding failed, the request failed, or the status is not 2xx.
        OSError: the bearer token could not be read.
    """
    try:
        body = encode(request)
    except Exception as exc:
        raise WriteError(f"marshalling proto: {exc}") from exc

    try:
        response = await client.post(endpoint, content=body, headers=REMOTE_WRITE_HEADERS)
    except httpx.HTTPError as exc:
        raise WriteError(f"making request: {exc}") from exc

    if not response.is_success:
        raise WriteError(
            f"non-2xx status: {response.status_code} {response.reason_phrase}"
        )

    logger.debug("Remote write accepted: status=%d", response.status_code)
