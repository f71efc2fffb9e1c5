"""
Publishing of one fetch cycle to the configured sinks.

Sinks are plain objects with one of two capabilities:
- SnapshotSink.publish_snapshot(WeatherSnapshot)   (gauges)
- PointSink.publish_points([TimestampedPoint])      (time-series writer)

Everything a sink needs is derived before the first sink is called, so a
cycle whose data is incomplete publishes nothing at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from core.aggregator import build_points, build_snapshot
from core.errors import SinkWriteError
from core.models import StationSeries, TimestampedPoint, WeatherSnapshot

logger = logging.getLogger("registrar")


@runtime_checkable
class SnapshotSink(Protocol):
    name: str

    async def publish_snapshot(self, snapshot: WeatherSnapshot) -> None: ...


@runtime_checkable
class PointSink(Protocol):
    name: str

    async def publish_points(self, points: Sequence[TimestampedPoint]) -> None: ...


@dataclass
class PublishReport:
    """What one cycle handed to the sinks."""
    station: str
    snapshot: Optional[WeatherSnapshot] = None
    points: List[TimestampedPoint] = field(default_factory=list)
    sinks: List[str] = field(default_factory=list)


class Publisher:
    """Fans one cycle's series out to every configured sink."""

    def __init__(self, sinks: Sequence[object] = ()):
        self.snapshot_sinks: List[SnapshotSink] = []
        self.point_sinks: List[PointSink] = []
        for sink in sinks:
            self.add(sink)

    def add(self, sink: object) -> None:
        matched = False
        if isinstance(sink, SnapshotSink):
            self.snapshot_sinks.append(sink)
            matched = True
        if isinstance(sink, PointSink):
            self.point_sinks.append(sink)
            matched = True
        if not matched:
            raise TypeError(f"{type(sink).__name__} publishes neither snapshots nor points")

    async def publish(self, series: StationSeries) -> PublishReport:
        """
        Derive and publish.

        Raises:
            SnapshotError: a scalar metric had no samples (nothing published)
            SinkWriteError: a sink failed; sinks earlier in the list have
                already been written
        """
        report = PublishReport(station=series.station)
        if self.snapshot_sinks:
            report.snapshot = build_snapshot(series)
        if self.point_sinks:
            report.points = build_points(series)

        for sink in self.snapshot_sinks:
            await _guarded(sink.name, sink.publish_snapshot(report.snapshot))
            report.sinks.append(sink.name)
        for sink in self.point_sinks:
            await _guarded(sink.name, sink.publish_points(report.points))
            report.sinks.append(sink.name)
        return report


async def _guarded(name: str, publishing) -> None:
    try:
        await publishing
    except SinkWriteError:
        raise
    except Exception as e:
        raise SinkWriteError(name, e) from e
