# Station Exporter - Main Orchestrator
# serve: metrics server + fixed-interval poller (gauges, optionally InfluxDB)
# push:  one fetch cycle written to InfluxDB, then exit

from __future__ import annotations

import asyncio
import logging
import sys
from typing import List, Optional, Sequence

import httpx

from config import PUSH_DEADLINE_SECONDS, ExporterConfig, configure_logging, load_config
from collector.station_fetcher import StationFetcher
from core.cycle import FetchCycle, log_cycle_error
from core.errors import ConfigError, StationError
from registrar.influxdb_sink import InfluxDbSink
from registrar.prometheus_sink import PrometheusSink
from registrar.sinks import Publisher

logger = logging.getLogger("main")


def build_influxdb_sink(config: ExporterConfig) -> InfluxDbSink:
    return InfluxDbSink(
        url=config.influxdb.url,
        token=config.influxdb.token,
        database=config.influxdb.database,
        org=config.influxdb.org,
    )


def build_fetcher(config: ExporterConfig, client: Optional[httpx.AsyncClient] = None) -> StationFetcher:
    return StationFetcher(
        config.station,
        url=config.station_url,
        timeout=config.fetch_timeout_seconds,
        client=client,
    )


async def run_push(config: ExporterConfig, client: Optional[httpx.AsyncClient] = None) -> int:
    """One-shot cycle into InfluxDB. Returns the process exit code."""
    logger.info(f"Starting influxdb ingestion for station {config.station}")
    sink = build_influxdb_sink(config)
    cycle = FetchCycle(build_fetcher(config, client), Publisher([sink]))
    try:
        report = await asyncio.wait_for(cycle.run(), timeout=PUSH_DEADLINE_SECONDS)
    except StationError as e:
        log_cycle_error(config.station, e)
        return 1
    except asyncio.TimeoutError:
        logger.error(f"[{config.station}] push exceeded {PUSH_DEADLINE_SECONDS:.0f}s")
        return 1
    finally:
        sink.close()
    logger.info(f"Stored {len(report.points)} points for {config.station}")
    return 0


def run_serve(config: ExporterConfig) -> int:
    import uvicorn
    from web_server import create_app

    gauges = PrometheusSink()
    sinks: List[object] = [gauges]
    influxdb: Optional[InfluxDbSink] = None
    if config.enable_influxdb:
        influxdb = build_influxdb_sink(config)
        sinks.append(influxdb)

    fetcher = build_fetcher(config)
    app = create_app(
        config,
        gauges,
        poll_cycle=FetchCycle(fetcher, Publisher(sinks)),
        scrape_cycle=FetchCycle(fetcher, Publisher([gauges])),
    )

    host, port = config.listen_address
    logger.info(f"Starting prometheus exporter for station {config.station} on {host}:{port}")
    try:
        # uvicorn handles SIGINT/SIGTERM and runs the app's shutdown
        uvicorn.run(app, host=host, port=port, log_config=None)
    finally:
        if influxdb is not None:
            influxdb.close()
    logger.info("bye")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        config = load_config(argv)
        configure_logging(config.log_env, config.log_level)
    except ConfigError as e:
        print(f"error on parsing options: {e}", file=sys.stderr)
        return 2

    if config.mode == "push":
        return asyncio.run(run_push(config))
    return run_serve(config)


if __name__ == "__main__":
    sys.exit(main())
