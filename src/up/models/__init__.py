"""Data models for the up probe."""

from .config import LogLevel, UpConfig, load_config, load_queries
from .probes import (
    METRIC_NAME_LABEL,
    Label,
    MatrixSeries,
    OutcomeSnapshot,
    QueriesFile,
    QueryResponse,
    QueryResult,
    QuerySpec,
    VectorSample,
    selector,
)

__all__ = [
    "METRIC_NAME_LABEL",
    "Label",
    "LogLevel",
    "MatrixSeries",
    "OutcomeSnapshot",
    "QueriesFile",
    "QueryResponse",
    "QueryResult",
    "QuerySpec",
    "UpConfig",
    "VectorSample",
    "load_config",
    "load_queries",
    "selector",
]
