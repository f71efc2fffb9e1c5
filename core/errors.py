"""
Error taxonomy for the fetch -> decode -> aggregate -> publish cycle.

Every error carries the structured context a caller needs to log it
(metric kind, raw string, status code). Nothing in the core logs these on
its own; they are raised to the cycle that owns them.
"""

from __future__ import annotations

from typing import Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from core.models import MetricKind


class StationError(RuntimeError):
    """Base error for a failed fetch cycle."""


class TransportError(StationError):
    """Network/connection failure or expired deadline while fetching."""

    def __init__(self, url: str, cause: Optional[BaseException] = None, timed_out: bool = False):
        self.url = url
        self.cause = cause
        self.timed_out = timed_out
        reason = "deadline exceeded" if timed_out else f"{type(cause).__name__}: {cause}"
        super().__init__(f"transport error fetching {url}: {reason}")


class UnexpectedStatusError(StationError):
    """The station endpoint answered with something other than 200."""

    def __init__(self, code: int, url: str = ""):
        self.code = code
        self.url = url
        super().__init__(f"received non-200 response code: {code}")


class UnparseableTimestampError(StationError, ValueError):
    """No sanctioned layout matched the station timestamp."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"unparseable timestamp: {raw!r}")


class ElementDecodeError(StationError):
    """A recognised metric element could not be decoded."""

    def __init__(self, kind: "MetricKind", cause: BaseException):
        self.kind = kind
        self.cause = cause
        super().__init__(f"error decoding {kind.element} element: {cause}")


class EmptySeriesError(StationError, LookupError):
    """Aggregation asked for the latest sample of a series with no samples."""

    def __init__(self, kind: "MetricKind"):
        self.kind = kind
        super().__init__(f"no samples for {kind.value}")


class SnapshotError(EmptySeriesError):
    """One or more snapshot fields had no samples; lists all of them."""

    def __init__(self, kinds: Sequence["MetricKind"]):
        super().__init__(kinds[0])
        self.kinds = tuple(kinds)
        self.args = (f"no samples for {', '.join(k.value for k in self.kinds)}",)


class SinkWriteError(StationError):
    """An external sink refused or failed a write."""

    def __init__(self, sink: str, cause: BaseException):
        self.sink = sink
        self.cause = cause
        super().__init__(f"error writing to {sink}: {cause}")


class ConfigError(ValueError):
    """Invalid or missing exporter option."""
