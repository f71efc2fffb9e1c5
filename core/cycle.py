"""
Fetch cycle: fetch -> decode -> aggregate -> publish, plus the fixed
interval poll loop that repeats it.

This is the layer that reacts to failures: the collectors and the aggregator
raise, the cycle logs with the context the error carries and carries on with
the next interval. A failed cycle updates no sink.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from collector.station_fetcher import StationFetcher
from core.errors import (
    ElementDecodeError,
    EmptySeriesError,
    SinkWriteError,
    SnapshotError,
    StationError,
    TransportError,
    UnexpectedStatusError,
)
from registrar.sinks import PublishReport, Publisher

logger = logging.getLogger("fetch_cycle")


@dataclass
class CycleStats:
    succeeded: int = 0
    failed: int = 0
    last_success_utc: Optional[datetime] = None
    last_error: Optional[str] = None


class FetchCycle:
    """One station, one publisher; `run()` is a single attempt."""

    def __init__(self, fetcher: StationFetcher, publisher: Publisher):
        self.fetcher = fetcher
        self.publisher = publisher
        self.stats = CycleStats()

    async def run(self, timeout: Optional[float] = None) -> PublishReport:
        """Run one cycle; every failure is raised to the caller."""
        try:
            series = await self.fetcher.fetch_series(timeout)
            report = await self.publisher.publish(series)
        except StationError as e:
            self.stats.failed += 1
            self.stats.last_error = str(e)
            raise
        self.stats.succeeded += 1
        self.stats.last_success_utc = datetime.now(timezone.utc)
        return report

    async def run_logged(self, timeout: Optional[float] = None) -> Optional[PublishReport]:
        """Run one cycle and log instead of raising. Returns None on failure."""
        station = self.fetcher.station
        logger.debug(f"Fetching data for station {station}")
        try:
            report = await self.run(timeout)
        except StationError as e:
            log_cycle_error(station, e)
            return None
        except Exception as e:
            self.stats.failed += 1
            self.stats.last_error = str(e)
            logger.exception(f"[{station}] unexpected error in fetch cycle")
            return None
        logger.info(
            f"[{station}] published to {', '.join(report.sinks) or 'no sinks'} "
            f"({len(report.points)} points)"
        )
        return report

    async def poll_forever(self, interval_seconds: float, stop: Optional[asyncio.Event] = None) -> None:
        """Run immediately, then every `interval_seconds` until `stop` is set."""
        stop = stop or asyncio.Event()
        logger.info(f"Starting poll loop for {self.fetcher.station} (every {interval_seconds:.0f}s)")
        while not stop.is_set():
            await self.run_logged()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info(f"Poll loop for {self.fetcher.station} stopped")


def log_cycle_error(station: str, error: StationError) -> None:
    if isinstance(error, TransportError):
        reason = "timeout" if error.timed_out else "transport"
        logger.error(f"[{station}] error fetching data ({reason}): {error}")
    elif isinstance(error, UnexpectedStatusError):
        logger.error(f"[{station}] station answered HTTP {error.code}")
    elif isinstance(error, ElementDecodeError):
        logger.error(f"[{station}] error decoding {error.kind.element} element: {error.cause}")
    elif isinstance(error, SnapshotError):
        missing = ", ".join(kind.value for kind in error.kinds)
        logger.warning(f"[{station}] nothing published, no samples for: {missing}")
    elif isinstance(error, EmptySeriesError):
        logger.warning(f"[{station}] nothing published, no samples for: {error.kind.value}")
    elif isinstance(error, SinkWriteError):
        logger.error(f"[{station}] error writing to {error.sink}: {error.cause}")
    else:
        logger.error(f"[{station}] cycle failed: {error}")
