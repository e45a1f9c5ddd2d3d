"""Configuration for the up probe.

Every command-line flag maps to a field of ``UpConfig``. Values not given on
the command line fall back to ``UP_*`` environment variables, then to the
defaults below. The model is validated once at startup and frozen; any
failure is a configuration error and the process exits before probing.
"""

import json
import re
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any, Literal

import promql_parser
import yaml
from pydantic import Field, HttpUrl, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode

from up.errors import ConfigError
from up.models.probes import METRIC_NAME_LABEL, Label, QueriesFile, QuerySpec
from up.tokens import TokenProvider, token_provider

LogLevel = Literal["error", "warn", "info", "debug"]

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(raw: str) -> timedelta:
    """Parse a Go-style duration such as ``5s``, ``1m30s`` or ``250ms``."""
    text = raw.strip()
    if text in ("0", ""):
        return timedelta(0)
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {raw!r}")
    return timedelta(seconds=seconds)


def parse_labels(raw: str) -> tuple[Label, ...]:
    """Parse ``name="value",other="value"`` into a label set.

    Values must be quoted, with double quotes (backslash escapes allowed)
    or backticks (raw).
    """
    labels = []
    for item in raw.split(","):
        name, sep, quoted = item.partition("=")
        if not sep:
            raise ValueError(f"unrecognized label {item!r}")
        labels.append(Label(name=name.strip(), value=_unquote(quoted.strip())))
    return tuple(labels)


def _unquote(quoted: str) -> str:
    if len(quoted) >= 2 and quoted[0] == quoted[-1] == "`":
        return quoted[1:-1]
    if len(quoted) >= 2 and quoted[0] == quoted[-1] == '"':
        try:
            return json.loads(quoted)
        except json.JSONDecodeError as exc:
            raise ValueError(f"unquote label value {quoted}: {exc.msg}") from exc
    raise ValueError(f"unquote label value {quoted}: value must be quoted")


def load_queries(path: Path) -> tuple[QuerySpec, ...]:
    """Load and validate the queries file.

    Every query must parse as PromQL; the first invalid one fails the load.
    """
    try:
        content = yaml.safe_load(path.read_text())
    except OSError as exc:
        raise ConfigError(f"--queries-file is invalid: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"--queries-file content is invalid: {exc}") from exc

    try:
        queries_file = QueriesFile.model_validate(content or {})
    except ValidationError as exc:
        raise ConfigError(f"--queries-file content is invalid: {exc}") from exc

    for spec in queries_file.queries:
        try:
            promql_parser.parse(spec.query)
        except Exception as exc:  # parser errors surface as several exception types
            raise ConfigError(
                f"query {spec.name!r} in --queries-file content is invalid: {exc}"
            ) from exc

    return tuple(queries_file.queries)


class UpConfig(BaseSettings):
    """Validated, frozen configuration of a probe run."""

    log_level: LogLevel = Field(default="info", description="The log filtering level")
    endpoint_write: HttpUrl | None = Field(
        default=None, description="The endpoint to which to make remote-write requests"
    )
    endpoint_read: HttpUrl | None = Field(
        default=None, description="The endpoint to which to make query requests"
    )
    labels: Annotated[tuple[Label, ...], NoDecode] = Field(
        default=(),
        description="Labels in addition to '__name__' applied to remote-write requests",
    )
    listen: str = Field(default=":8080", description="The address of the internal server")
    name: str = Field(default="up", description="The name of the metric to remote-write")
    token: str | None = Field(
        default=None, description="Static bearer token, takes precedence over token_file"
    )
    token_file: Path | None = Field(
        default=None, description="File to read a bearer token from on every request"
    )
    queries_file: Path | None = Field(
        default=None, description="YAML file of named queries to run against the read endpoint"
    )
    queries: tuple[QuerySpec, ...] = Field(default=(), description="Loaded named queries")

    period: timedelta = Field(
        default=timedelta(seconds=5), description="Time between remote-write requests"
    )
    duration: timedelta = Field(
        default=timedelta(minutes=5),
        description="How long to run; zero runs until the process is terminated",
    )
    latency: timedelta = Field(
        default=timedelta(seconds=15),
        description="Maximum allowable latency between writing and reading",
    )
    initial_query_delay: timedelta = Field(
        default=timedelta(seconds=5), description="Time to wait before the first query"
    )
    threshold: float = Field(
        default=0.9, ge=0.0, le=1.0, description="Success ratio needed to succeed overall"
    )

    model_config = {"env_prefix": "UP_", "frozen": True}

    @field_validator("labels", mode="before")
    @classmethod
    def _parse_labels(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_labels(v) if v.strip() else ()
        return v

    @field_validator("period", "duration", "latency", "initial_query_delay", mode="before")
    @classmethod
    def _parse_duration(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @field_validator("listen")
    @classmethod
    def _valid_listen(cls, v: str) -> str:
        _, sep, port = v.rpartition(":")
        if not sep or not port.isdigit():
            raise ValueError(f"listen address must be host:port, got {v!r}")
        return v

    @model_validator(mode="before")
    @classmethod
    def _load_queries(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("queries_file") and not data.get("queries"):
            data = {**data, "queries": load_queries(Path(data["queries_file"]))}
        return data

    @model_validator(mode="after")
    def _latency_exceeds_period(self) -> "UpConfig":
        if self.latency <= self.period:
            raise ValueError("--latency cannot be less than period")
        if self.period <= timedelta(0):
            raise ValueError("--period must be positive")
        return self

    @property
    def series_labels(self) -> tuple[Label, ...]:
        """The configured labels with the metric name appended."""
        return (*self.labels, Label(name=METRIC_NAME_LABEL, value=self.name))

    @property
    def listen_address(self) -> tuple[str, int]:
        host, _, port = self.listen.rpartition(":")
        return host or "0.0.0.0", int(port)

    def token_provider(self) -> TokenProvider:
        return token_provider(self.token or "", str(self.token_file or ""))


def load_config(**values: Any) -> UpConfig:
    """Build the configuration from explicit values, the environment and defaults.

    ``None`` values are treated as unset so the environment can supply them.

    Raises:
        ConfigError: the configuration is invalid.
    """
    try:
        return UpConfig(**{k: v for k, v in values.items() if v is not None})
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
