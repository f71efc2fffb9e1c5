"""
Series Aggregator
Reshapes one cycle's decoded series into what the sinks consume:
- snapshot mode: latest value per scalar metric (gauges)
- point-set mode: one row per distinct timestamp (time-series storage)
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from core.errors import EmptySeriesError, SnapshotError
from core.models import (
    SCALAR_KINDS,
    MetricKind,
    MetricSeries,
    StationSeries,
    TimestampedPoint,
    WeatherSnapshot,
)


def latest_value(series: MetricSeries) -> float:
    """Value of the last sample; EmptySeriesError when there is none."""
    return series.last().value


def latest_values(data: StationSeries, kinds: Sequence[MetricKind] = SCALAR_KINDS) -> Dict[MetricKind, Optional[float]]:
    """Per-field form of snapshot mode: None for every metric with no samples."""
    values: Dict[MetricKind, Optional[float]] = {}
    for kind in kinds:
        try:
            values[kind] = latest_value(data.series(kind))
        except EmptySeriesError:
            values[kind] = None
    return values


def build_snapshot(data: StationSeries) -> WeatherSnapshot:
    """
    Snapshot mode. All four scalar metrics are required.

    Raises:
        SnapshotError: one or more metrics had no samples; `kinds` lists
            them all, `kind` is the first one.
    """
    values = latest_values(data, SCALAR_KINDS)
    missing = [kind for kind, value in values.items() if value is None]
    if missing:
        raise SnapshotError(missing)
    return WeatherSnapshot(
        temperature=values[MetricKind.TEMPERATURE],
        humidity=values[MetricKind.HUMIDITY],
        precipitation=values[MetricKind.PRECIPITATION],
        radiation=values[MetricKind.RADIATION],
    )


def build_points(
    data: StationSeries,
    station: Optional[str] = None,
    kinds: Iterable[MetricKind] = SCALAR_KINDS,
) -> List[TimestampedPoint]:
    """
    Point-set mode.

    Samples sharing an instant (across series) coalesce into one point.
    Aware datetimes compare by instant, so +01 and +01:00 spellings of the
    same moment land on the same point. Within one series a repeated
    timestamp is last-write-wins in document order.

    Returns:
        Points sorted by timestamp ascending.
    """
    station = data.station if station is None else station
    rows: Dict[datetime, Dict[str, float]] = {}
    for kind in kinds:
        for sample in data.series(kind):
            rows.setdefault(sample.timestamp, {})[kind.field_name] = sample.value

    return [
        TimestampedPoint(timestamp=ts, station=station, fields=fields)
        for ts, fields in sorted(rows.items(), key=lambda item: item[0])
    ]
