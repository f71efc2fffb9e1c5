"""
Time-series sink: one InfluxDB point per distinct station timestamp.

    meteotrentino,station=T0147 humidity_percent=80.0,temperature_celsius=5.2 1762988400
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from core.errors import SinkWriteError
from core.models import TimestampedPoint

logger = logging.getLogger("influxdb_sink")

MEASUREMENT = "meteotrentino"


class InfluxDbSink:
    name = "influxdb"

    def __init__(
        self,
        url: str,
        token: str,
        database: str,
        org: str = "",
        measurement: str = MEASUREMENT,
        client: Optional[InfluxDBClient] = None,
    ):
        self.database = database
        self.org = org or None
        self.measurement = measurement
        self.client = client or InfluxDBClient(url=url, token=token, org=self.org)
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)

    def to_point(self, point: TimestampedPoint) -> Point:
        """Station tag upper-cased, timestamp truncated to whole seconds."""
        record = (
            Point(self.measurement)
            .tag("station", point.station.upper())
            .time(point.timestamp.replace(microsecond=0), WritePrecision.S)
        )
        for name, value in point.fields.items():
            record = record.field(name, float(value))
        return record

    async def publish_points(self, points: Sequence[TimestampedPoint]) -> None:
        records: List[Point] = [self.to_point(p) for p in points]
        if not records:
            logger.debug("No points to write")
            return
        kwargs = {"bucket": self.database, "record": records, "write_precision": WritePrecision.S}
        if self.org:
            kwargs["org"] = self.org
        try:
            # The synchronous client blocks; keep it off the event loop.
            await asyncio.to_thread(self.write_api.write, **kwargs)
        except Exception as e:
            raise SinkWriteError(self.name, e) from e
        logger.info(f"Wrote {len(records)} points to {self.database}")

    def close(self) -> None:
        self.write_api.close()
        self.client.close()
