from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from collector.timestamp_parser import parse_station_time
from core.errors import UnparseableTimestampError

MIDNIGHT_CET_UTC = datetime(2025, 11, 12, 23, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw",
    [
        "2025-11-13T00:00:00+01",
        "2025-11-13T00:00:00+01:00",
        "2025-11-12T23:00:00Z",
        "2025-11-13T00:00:00",
        "  2025-11-13T00:00:00+01\n",
    ],
)
def test_every_layout_yields_the_same_instant(raw):
    assert parse_station_time(raw) == MIDNIGHT_CET_UTC


def test_hour_offset_layout_keeps_offset():
    parsed = parse_station_time("2025-11-13T00:00:00+01")

    assert parsed.utcoffset() == timedelta(hours=1)
    assert (parsed.hour, parsed.minute) == (0, 0)


def test_negative_hour_offset():
    parsed = parse_station_time("2025-11-13T00:00:00-03")

    assert parsed == datetime(2025, 11, 13, 3, 0, 0, tzinfo=timezone.utc)


def test_zoneless_uses_station_civil_time_including_dst():
    summer = parse_station_time("2025-07-01T12:00:00")
    winter = parse_station_time("2025-01-15T12:00:00")

    assert summer == datetime(2025, 7, 1, 10, 0, 0, tzinfo=timezone.utc)
    assert winter == datetime(2025, 1, 15, 11, 0, 0, tzinfo=timezone.utc)


def test_zoneless_zone_can_be_overridden():
    parsed = parse_station_time("2025-11-13T00:00:00", local_tz=timezone.utc)

    assert parsed == datetime(2025, 11, 13, 0, 0, 0, tzinfo=timezone.utc)


def test_fractional_rfc3339():
    parsed = parse_station_time("2025-11-12T23:00:00.250000+00:00")

    assert parsed == MIDNIGHT_CET_UTC + timedelta(milliseconds=250)


@pytest.mark.parametrize(
    "raw",
    ["", "yesterday", "2025-11-13", "2025-13-01T00:00:00+01", "13/11/2025 00:00", "2025-11-13T25:00:00"],
)
def test_unparseable_timestamp_carries_raw_text(raw):
    with pytest.raises(UnparseableTimestampError) as exc_info:
        parse_station_time(raw)

    assert exc_info.value.raw == raw
    assert repr(raw) in str(exc_info.value)
