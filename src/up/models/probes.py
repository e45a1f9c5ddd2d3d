"""Probe data models: label sets, query specs, query API responses and outcomes."""

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
METRIC_NAME_LABEL = "__name__"


class Label(BaseModel):
    """A single (name, value) pair of a label set."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        if not LABEL_NAME_RE.match(v):
            raise ValueError(f"unsupported format for label name {v!r}")
        return v

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


def selector(labels: tuple[Label, ...]) -> str:
    """Build a PromQL selector matching exactly the given label set."""
    matchers = ",".join(f'{label.name}="{_escape(label.value)}"' for label in labels)
    return "{" + matchers + "}"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class QuerySpec(BaseModel):
    """A named PromQL expression run by the query loop."""

    model_config = ConfigDict(frozen=True)

    name: str
    query: str


class QueriesFile(BaseModel):
    queries: list[QuerySpec] = Field(default_factory=list)


# =============================================================================
# QUERY API RESPONSES
# =============================================================================


class VectorSample(BaseModel):
    metric: dict[str, str] = Field(default_factory=dict)
    value: tuple[float, float]

    @property
    def sample_value(self) -> float:
        return self.value[1]


class MatrixSeries(BaseModel):
    metric: dict[str, str] = Field(default_factory=dict)
    values: list[tuple[float, float]] = Field(default_factory=list)


ResultType = Literal["scalar", "vector", "matrix"]

_RESULT_ADAPTERS: dict[str, TypeAdapter[Any]] = {
    "scalar": TypeAdapter(tuple[float, float]),
    "vector": TypeAdapter(list[VectorSample]),
    "matrix": TypeAdapter(list[MatrixSeries]),
}


class QueryResponse(BaseModel):
    """Envelope returned by the Prometheus HTTP query API."""

    status: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error_type: str = Field(default="", alias="errorType")
    error: str = ""


class QueryResult(BaseModel):
    result_type: ResultType
    result: tuple[float, float] | list[VectorSample] | list[MatrixSeries]

    @classmethod
    def from_response(cls, response: QueryResponse) -> "QueryResult":
        """Decode the typed result of a successful query response.

        Raises:
            ValueError: the result type is not scalar, vector or matrix, or the
                result does not match its declared type.
        """
        result_type = response.data.get("resultType")
        adapter = _RESULT_ADAPTERS.get(result_type or "")
        if adapter is None:
            raise ValueError(f"unexpected value type {result_type!r}")
        return cls.model_construct(
            result_type=result_type,
            result=adapter.validate_python(response.data.get("result")),
        )

    def __str__(self) -> str:
        if self.result_type == "scalar":
            ts, value = self.result
            return f"scalar: {value} @[{ts}]"
        return f"{self.result_type}: {len(self.result)} series"


# =============================================================================
# OUTCOMES
# =============================================================================


class OutcomeSnapshot(BaseModel):
    """Success and error counts of one probe kind at a point in time."""

    successes: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.successes + self.errors

    @property
    def ratio(self) -> float | None:
        """Success ratio, or None when nothing was recorded."""
        if self.total == 0:
            return None
        return self.successes / self.total
