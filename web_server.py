# Station Exporter - Metrics Server
# GET /metrics refreshes the station on demand and serves the gauges,
# GET /up is a liveness probe.

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response

from config import ExporterConfig
from core.cycle import FetchCycle
from registrar.prometheus_sink import PrometheusSink

logger = logging.getLogger("web_server")


def create_app(
    config: ExporterConfig,
    gauges: PrometheusSink,
    poll_cycle: FetchCycle,
    scrape_cycle: Optional[FetchCycle] = None,
    start_poller: bool = True,
) -> FastAPI:
    """
    Build the exporter app.

    Args:
        config: Exporter configuration.
        gauges: Gauge sink whose registry /metrics exposes.
        poll_cycle: Cycle run by the poller (every configured sink).
        scrape_cycle: Cycle run by /metrics before exposing; defaults to
            `poll_cycle`.
        start_poller: Run the fixed-interval poll loop for the app's lifetime.
    """

    scrape_cycle = scrape_cycle or poll_cycle

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop = asyncio.Event()
        poller: Optional[asyncio.Task] = None
        if start_poller:
            poller = asyncio.create_task(poll_cycle.poll_forever(config.poll_interval_seconds, stop))
        logger.info(f"Exporter for station {config.station} ready")
        try:
            yield
        finally:
            stop.set()
            if poller is not None:
                await poller
            logger.info("terminating")

    app = FastAPI(title="Station Exporter", lifespan=lifespan)
    app.state.config = config
    app.state.poll_cycle = poll_cycle
    app.state.scrape_cycle = scrape_cycle
    app.state.gauges = gauges

    @app.get("/metrics")
    async def metrics():
        """Refresh from the station, then expose. Stale gauges are served if the refresh fails."""
        if await scrape_cycle.run_logged(config.fetch_timeout_seconds) is None:
            since = gauges.last_update.isoformat() if gauges.last_update else "never"
            logger.warning(f"Serving stale gauges for {config.station} (last update: {since})")
        return Response(content=gauges.render(), media_type=gauges.content_type)

    @app.get("/up", status_code=204)
    async def up():
        return Response(status_code=204)

    return app
