"""
Station Fetcher
Fetches the station's last-data document under a deadline and streams the
body straight into the decoder.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import tzinfo
from typing import Optional

import httpx

from collector.station_decoder import StationDocumentDecoder, build_station_series
from core.errors import TransportError, UnexpectedStatusError
from core.models import STATION_TZ, StationSeries
from core.pool import Pool, PooledBuffer, PooledDocument

logger = logging.getLogger("station_fetcher")

DEFAULT_STATION_URL = "http://dati.meteotrentino.it/service.asmx/getLastDataOfMeteoStation"
DEFAULT_TIMEOUT_SECONDS = 5.0


class StationFetcher:
    """
    One fetch -> decode cycle per call, no retries.

    The pooled document and read buffer are acquired per call, so overlapping
    calls (a scrape arriving while the poller runs) never share them. Both go
    back to their pools on success, failure, timeout and cancellation alike.
    """

    def __init__(
        self,
        station: str,
        url: str = DEFAULT_STATION_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        local_tz: tzinfo = STATION_TZ,
        documents: Optional[Pool[PooledDocument]] = None,
        buffers: Optional[Pool[PooledBuffer]] = None,
    ):
        if not station:
            raise ValueError("station code is required")
        self.station = station
        self.url = url
        self.timeout = timeout if timeout and timeout > 0 else DEFAULT_TIMEOUT_SECONDS
        self.local_tz = local_tz
        self.documents = documents or Pool(PooledDocument)
        self.buffers = buffers or Pool(PooledBuffer)
        self._client = client

    async def fetch_series(self, timeout: Optional[float] = None) -> StationSeries:
        """
        Fetch and decode the station document.

        Args:
            timeout: Deadline in seconds for request + decode; defaults to the
                fetcher's timeout. An enclosing caller deadline still applies
                if it is sooner.

        Raises:
            TransportError: connection failure or deadline exceeded
            UnexpectedStatusError: non-200 answer
            ElementDecodeError: a metric element could not be decoded
        """
        deadline = timeout if timeout and timeout > 0 else self.timeout
        t0 = time.monotonic()
        try:
            series = await asyncio.wait_for(self._fetch(deadline), timeout=deadline)
        except asyncio.TimeoutError as e:
            raise TransportError(self.url, e, timed_out=True) from e
        elapsed_ms = (time.monotonic() - t0) * 1000
        logger.debug(f"Fetched {series.sample_count} samples for {self.station} in {elapsed_ms:.1f}ms")
        return series

    async def _fetch(self, deadline: float) -> StationSeries:
        if self._client is not None:
            return await self._fetch_with(self._client)
        async with httpx.AsyncClient(timeout=deadline, follow_redirects=True) as client:
            return await self._fetch_with(client)

    async def _fetch_with(self, client: httpx.AsyncClient) -> StationSeries:
        with self.documents.acquire() as document, self.buffers.acquire() as buffer:
            document.station = self.station
            decoder = StationDocumentDecoder(document, self.local_tz)
            try:
                async with client.stream("GET", self.url, params={"codice": self.station}) as response:
                    if response.status_code != httpx.codes.OK:
                        raise UnexpectedStatusError(response.status_code, str(response.url))
                    async for chunk in response.aiter_bytes():
                        _feed_buffered(decoder, buffer, chunk)
            except httpx.HTTPError as e:
                raise TransportError(self.url, e) from e

            if len(buffer):
                decoder.feed_bytes(buffer.drain())
            decoder.close()
            return build_station_series(document, self.station)


def _feed_buffered(decoder: StationDocumentDecoder, buffer: PooledBuffer, chunk: bytes) -> None:
    """Batch small network chunks; hand the decoder full buffers only."""
    view = memoryview(chunk)
    while view:
        taken = buffer.write(view)
        view = view[taken:]
        if buffer.free == 0:
            decoder.feed_bytes(buffer.drain())


async def fetch_station_series(
    station: str,
    url: str = DEFAULT_STATION_URL,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: Optional[httpx.AsyncClient] = None,
) -> StationSeries:
    """Single-shot helper around StationFetcher."""
    return await StationFetcher(station, url=url, timeout=timeout, client=client).fetch_series()
