"""Exception hierarchy for the up probe."""


class UpError(Exception):
    """Base class for every error raised by up."""


class ConfigError(UpError):
    """Invalid configuration. Fatal before any probe runs."""


class ProbeError(UpError):
    """A single probe execution failed."""


class WriteError(ProbeError):
    pass


class ReadError(ProbeError):
    pass


class QueryError(ProbeError):
    """A named query failed. Carries any warnings the server returned."""

    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        self.warnings = warnings or []
        super().__init__(message)


class VerdictError(UpError):
    """Raised when the success ratio of a probe kind is below the threshold."""

    def __init__(self, threshold: float, ratio: float | None) -> None:
        self.threshold = threshold
        self.ratio = ratio
        actual = "n/a, no requests were made" if ratio is None else f"{ratio * 100:.0f}%"
        super().__init__(
            f"failed with less than {threshold * 100:.0f}% success ratio - actual {actual}"
        )
