"""
Utilities to parse station timestamps.

Stations publish dates in a handful of layouts. They are tried in order and
the first match wins:
- hour-only offset, e.g. 2025-11-13T00:00:00+01 (the usual station output)
- RFC 3339, e.g. 2025-11-13T00:00:00+01:00, 2025-11-12T23:00:00Z
- no zone, e.g. 2025-11-13T00:00:00, read in the station's civil time
  (Europe/Rome) rather than guessed.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional, Tuple

from core.errors import UnparseableTimestampError
from core.models import STATION_TZ

_HOUR_OFFSET_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})([+-])(\d{2})$"
)


def _parse_hour_offset(raw: str, local_tz: tzinfo) -> Optional[datetime]:
    m = _HOUR_OFFSET_RE.match(raw)
    if not m:
        return None
    year, month, day, hour, minute, second = (int(g) for g in m.group(1, 2, 3, 4, 5, 6))
    sign = -1 if m.group(7) == "-" else 1
    try:
        offset = timezone(sign * timedelta(hours=int(m.group(8))))
        return datetime(year, month, day, hour, minute, second, tzinfo=offset)
    except ValueError:
        return None


def _parse_rfc3339(raw: str, local_tz: tzinfo) -> Optional[datetime]:
    for fmt in ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z"):
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    return None


def _parse_zoneless(raw: str, local_tz: tzinfo) -> Optional[datetime]:
    try:
        naive = datetime.strptime(raw, "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return None
    return naive.replace(tzinfo=local_tz)


LAYOUTS: Tuple[Tuple[str, Callable[[str, tzinfo], Optional[datetime]]], ...] = (
    ("hour_offset", _parse_hour_offset),
    ("rfc3339", _parse_rfc3339),
    ("zoneless", _parse_zoneless),
)


def parse_station_time(raw: str, local_tz: tzinfo = STATION_TZ) -> datetime:
    """
    Parse a station timestamp into an aware datetime.

    Args:
        raw: Timestamp text as found in the document (surrounding
            whitespace is ignored).
        local_tz: Zone applied to zone-less timestamps.

    Raises:
        UnparseableTimestampError: no layout matched; carries `raw`.
    """
    text = (raw or "").strip()
    if text:
        for _name, parse in LAYOUTS:
            parsed = parse(text, local_tz)
            if parsed is not None:
                return parsed
    raise UnparseableTimestampError(raw)
