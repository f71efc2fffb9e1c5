"""
Station Exporter - Configuration
Options for the station, the metrics server and the InfluxDB writer, plus
logging setup.

Precedence, lowest first: defaults, .env file, command-line flags,
environment variables.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Tuple

from dotenv import load_dotenv

from collector.station_fetcher import DEFAULT_STATION_URL, DEFAULT_TIMEOUT_SECONDS
from core.errors import ConfigError

# ============================================================================
# DEFAULTS
# ============================================================================

STATION_LIST_URL = "https://content.meteotrentino.it/dati-meteo/stazioni/dati-meteo.html"
DEFAULT_METRICS_SERVER = ":3000"
DEFAULT_LOG_ENV = "development"
DEFAULT_LOG_LEVEL = "debug"
# Station data refreshes every 15 minutes
DEFAULT_POLL_INTERVAL_SECONDS = 15 * 60
# Overall deadline of the one-shot push mode
PUSH_DEADLINE_SECONDS = 60.0

MODES = ("serve", "push")

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "dpanic": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TRUE = {"1", "t", "true"}
_FALSE = {"0", "f", "false"}


# ============================================================================
# CONFIG OBJECTS
# ============================================================================

@dataclass(frozen=True)
class InfluxDbConfig:
    """Connection settings for the time-series writer."""
    url: str = ""
    token: str = ""
    org: str = ""
    database: str = ""

    def missing(self) -> Tuple[str, ...]:
        return tuple(name for name in ("url", "token", "database") if not getattr(self, name))


@dataclass(frozen=True)
class ExporterConfig:
    """Built once at startup and passed to whatever needs it."""
    station: str
    mode: str = "serve"
    station_url: str = DEFAULT_STATION_URL
    log_env: str = DEFAULT_LOG_ENV
    log_level: str = DEFAULT_LOG_LEVEL
    metrics_server: str = DEFAULT_METRICS_SERVER
    enable_influxdb: bool = False
    influxdb: InfluxDbConfig = field(default_factory=InfluxDbConfig)
    fetch_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    @property
    def listen_address(self) -> Tuple[str, int]:
        """(host, port) of the metrics server; an empty host binds all interfaces."""
        return parse_listen_address(self.metrics_server)


# ============================================================================
# PARSING
# ============================================================================

def parse_bool(name: str, raw: str) -> bool:
    value = str(raw).strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"wrong parameter value for {name}")


def parse_seconds(name: str, raw) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"wrong parameter value for {name}") from None
    if value <= 0:
        raise ConfigError(f"wrong parameter value for {name}")
    return value


def parse_listen_address(address: str) -> Tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        host, port = "", address
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigError(f"wrong parameter value for metrics-server: {address!r}") from None
    if not 0 < port_num < 65536:
        raise ConfigError(f"wrong parameter value for metrics-server: {address!r}")
    return host or "0.0.0.0", port_num


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="station-exporter",
        description="Export weather station readings to Prometheus and InfluxDB",
    )
    parser.add_argument("--station", default="",
                        help=f"station code, you can find them looking here: {STATION_LIST_URL}")
    parser.add_argument("--mode", choices=MODES, default="serve",
                        help="serve: metrics server + poller; push: one-shot InfluxDB write")
    parser.add_argument("--station-url", default=DEFAULT_STATION_URL, help="station last-data endpoint")
    parser.add_argument("--log-env", default=DEFAULT_LOG_ENV,
                        help="logging environment type: production, development")
    parser.add_argument("--log-level", default=DEFAULT_LOG_LEVEL,
                        help="logging level: info, debug, error, ...")
    parser.add_argument("--metrics-server", default=DEFAULT_METRICS_SERVER,
                        help="metrics server binding address <ip>:<port>")
    parser.add_argument("--enable-influxdb", action="store_true",
                        help="metrics will be published to influxdb")
    parser.add_argument("--influxdb-url", default="", help="influxdb url")
    parser.add_argument("--influxdb-token", default="", help="influxdb token")
    parser.add_argument("--influxdb-org", default="", help="influxdb organization")
    parser.add_argument("--influxdb-database", default="", help="influxdb database")
    parser.add_argument("--fetch-timeout", type=float, default=DEFAULT_TIMEOUT_SECONDS,
                        help="deadline in seconds for one station fetch")
    parser.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL_SECONDS,
                        help="seconds between two station fetches")
    return parser


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = None,
) -> ExporterConfig:
    """
    Build the exporter configuration.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).
        environ: Environment to read (defaults to os.environ after loading
            the .env file).
        dotenv_path: Explicit .env file; by default one is searched for.

    Raises:
        ConfigError: missing station, malformed values, incomplete InfluxDB
            settings.
    """
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ
    args = build_arg_parser().parse_args(argv)

    def pick(env_name: str, flag_value):
        raw = environ.get(env_name)
        return flag_value if raw is None else raw

    station = str(pick("STATION", args.station)).strip()
    if not station:
        raise ConfigError("missing station value")

    enable_influxdb = args.enable_influxdb
    if "ENABLE_INFLUXDB" in environ:
        enable_influxdb = parse_bool("enableInfluxDb", environ["ENABLE_INFLUXDB"])

    mode = str(pick("MODE", args.mode)).strip().lower()
    if mode not in MODES:
        raise ConfigError("wrong parameter value for mode")

    influxdb = InfluxDbConfig(
        url=pick("INFLUXDB_URL", args.influxdb_url),
        token=pick("INFLUXDB_TOKEN", args.influxdb_token),
        org=pick("INFLUXDB_ORG", args.influxdb_org),
        database=pick("INFLUXDB_DATABASE", args.influxdb_database),
    )
    if (enable_influxdb or mode == "push") and influxdb.missing():
        raise ConfigError(f"missing influxdb settings: {', '.join(influxdb.missing())}")

    config = ExporterConfig(
        station=station,
        mode=mode,
        station_url=pick("STATION_URL", args.station_url),
        log_env=pick("LOG_ENV", args.log_env),
        log_level=pick("LOG_LEVEL", args.log_level),
        metrics_server=pick("METRICS_SERVER", args.metrics_server),
        enable_influxdb=enable_influxdb,
        influxdb=influxdb,
        fetch_timeout_seconds=parse_seconds("fetchTimeout", pick("FETCH_TIMEOUT_SECONDS", args.fetch_timeout)),
        poll_interval_seconds=parse_seconds("pollInterval", pick("POLL_INTERVAL_SECONDS", args.poll_interval)),
    )
    # Fail early on a bad bind address
    config.listen_address
    return config


# ============================================================================
# LOGGING
# ============================================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(log_env: str = DEFAULT_LOG_ENV, log_level: str = DEFAULT_LOG_LEVEL) -> None:
    level = LOG_LEVELS.get(str(log_level).strip().lower())
    if level is None:
        raise ConfigError(f"error level string not valid: {log_level!r}")

    handler = logging.StreamHandler(sys.stderr)
    if str(log_env).strip().lower() == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        ))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    # Silence verbose loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
