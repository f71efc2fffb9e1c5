"""
Station Exporter - Registrar
Publishes fetch cycles to the gauge and time-series sinks.
"""

from .sinks import PointSink, Publisher, PublishReport, SnapshotSink

__all__ = ["PointSink", "Publisher", "PublishReport", "SnapshotSink"]
