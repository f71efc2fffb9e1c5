"""
Gauge sink: latest station values exposed in Prometheus text format.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from core.models import SCALAR_KINDS, MetricKind, WeatherSnapshot

logger = logging.getLogger("prometheus_sink")

GAUGE_HELP: Dict[MetricKind, str] = {
    MetricKind.TEMPERATURE: "Current temperature in celsius",
    MetricKind.HUMIDITY: "Current relative humidity in percent",
    MetricKind.PRECIPITATION: "Current precipitation in millimeters",
    MetricKind.RADIATION: "Current radiation in watts per square meter",
}


class PrometheusSink:
    """
    Owns a private registry with the four station gauges, so several
    exporters (or tests) never collide on the process-wide default registry.
    """

    name = "prometheus"
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.gauges: Dict[str, Gauge] = {
            kind.field_name: Gauge(kind.field_name, GAUGE_HELP[kind], registry=self.registry)
            for kind in SCALAR_KINDS
        }
        self.last_update: Optional[datetime] = None

    async def publish_snapshot(self, snapshot: WeatherSnapshot) -> None:
        for name, value in snapshot.as_fields().items():
            self.gauges[name].set(value)
        self.last_update = datetime.now(timezone.utc)
        logger.debug(f"Gauges updated: {snapshot}")

    def value(self, field_name: str) -> Optional[float]:
        return self.registry.get_sample_value(field_name)

    def render(self) -> bytes:
        """Exposition payload for GET /metrics."""
        return generate_latest(self.registry)
