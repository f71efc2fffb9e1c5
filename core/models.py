from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple
from zoneinfo import ZoneInfo

from core.errors import EmptySeriesError

# Civil time of the station network; zone-less timestamps are read in it.
STATION_TZ = ZoneInfo("Europe/Rome")


class MetricKind(Enum):
    """Physical quantity reported by the station."""
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PRECIPITATION = "precipitation"
    RADIATION = "radiation"
    WIND_SPEED = "wind_speed"
    WIND_GUST = "wind_gust"
    WIND_DIRECTION = "wind_direction"

    @property
    def element(self) -> str:
        """Local name of the markup element that carries this quantity."""
        return _ELEMENTS[self]

    @property
    def field_name(self) -> str:
        """Gauge / time-series field name."""
        return _FIELD_NAMES[self]


_ELEMENTS = {
    MetricKind.TEMPERATURE: "air_temperature",
    MetricKind.HUMIDITY: "relative_humidity",
    MetricKind.PRECIPITATION: "precipitation",
    MetricKind.RADIATION: "global_radiation",
    MetricKind.WIND_SPEED: "wind10m",
    MetricKind.WIND_GUST: "wind10m",
    MetricKind.WIND_DIRECTION: "wind10m",
}

_FIELD_NAMES = {
    MetricKind.TEMPERATURE: "temperature_celsius",
    MetricKind.HUMIDITY: "humidity_percent",
    MetricKind.PRECIPITATION: "precipitation_mm",
    MetricKind.RADIATION: "radiation_watts_per_square_meter",
    MetricKind.WIND_SPEED: "wind_speed",
    MetricKind.WIND_GUST: "wind_gust",
    MetricKind.WIND_DIRECTION: "wind_direction_degrees",
}

# Quantities published to the gauge and time-series sinks, in field order.
SCALAR_KINDS: Tuple[MetricKind, ...] = (
    MetricKind.TEMPERATURE,
    MetricKind.HUMIDITY,
    MetricKind.PRECIPITATION,
    MetricKind.RADIATION,
)
WIND_KINDS: Tuple[MetricKind, ...] = (
    MetricKind.WIND_SPEED,
    MetricKind.WIND_GUST,
    MetricKind.WIND_DIRECTION,
)


@dataclass(frozen=True)
class Sample:
    """One observation as it appeared in the station document."""
    timestamp: datetime
    value: float
    unit: str = ""


@dataclass(frozen=True)
class MetricSeries:
    """Readings of one quantity for one fetch cycle, in document order."""
    kind: MetricKind
    samples: Tuple[Sample, ...] = ()

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    def last(self) -> Sample:
        """Latest sample by document order."""
        if not self.samples:
            raise EmptySeriesError(self.kind)
        return self.samples[-1]


@dataclass(frozen=True)
class StationSeries:
    """
    All series decoded from one station document.
    Read-only once produced; safe to hand to several sinks.
    """
    station: str
    series_by_kind: Mapping[MetricKind, MetricSeries]

    def __post_init__(self):
        complete = {kind: self.series_by_kind.get(kind, MetricSeries(kind)) for kind in MetricKind}
        object.__setattr__(self, "series_by_kind", MappingProxyType(complete))

    def series(self, kind: MetricKind) -> MetricSeries:
        return self.series_by_kind[kind]

    @property
    def temperature(self) -> MetricSeries:
        return self.series_by_kind[MetricKind.TEMPERATURE]

    @property
    def humidity(self) -> MetricSeries:
        return self.series_by_kind[MetricKind.HUMIDITY]

    @property
    def precipitation(self) -> MetricSeries:
        return self.series_by_kind[MetricKind.PRECIPITATION]

    @property
    def radiation(self) -> MetricSeries:
        return self.series_by_kind[MetricKind.RADIATION]

    @property
    def sample_count(self) -> int:
        return sum(len(s) for s in self.series_by_kind.values())


@dataclass(frozen=True)
class WeatherSnapshot:
    """Latest value per scalar metric, used for gauge exposition."""
    temperature: float
    humidity: float
    precipitation: float
    radiation: float

    def as_fields(self) -> Dict[str, float]:
        return {
            MetricKind.TEMPERATURE.field_name: self.temperature,
            MetricKind.HUMIDITY.field_name: self.humidity,
            MetricKind.PRECIPITATION.field_name: self.precipitation,
            MetricKind.RADIATION.field_name: self.radiation,
        }


@dataclass(frozen=True)
class TimestampedPoint:
    """
    One row of the time-series output: every metric that reported a sample
    at exactly `timestamp`, keyed by field name.
    """
    timestamp: datetime
    station: str
    fields: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
