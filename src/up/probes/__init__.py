"""Probe operations: single, self-contained network checks.

Each probe either returns normally (success) or raises (error). Recording
the outcome is left to the runner that drives it.
"""

from .prometheus import (
    decode_response,
    format_time,
    post_with_get_fallback,
    query,
    query_url,
    read,
    unix_seconds,
)
from .remote_write import REMOTE_WRITE_HEADERS, WriteRequest, encode, generate, write

__all__ = [
    "REMOTE_WRITE_HEADERS",
    "WriteRequest",
    "decode_response",
    "encode",
    "format_time",
    "generate",
    "post_with_get_fallback",
    "query",
    "query_url",
    "read",
    "unix_seconds",
    "write",
]
