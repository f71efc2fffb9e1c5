"""
Station Exporter - Collector Module
Fetching and tolerant decoding of the station's last-data document.
"""

from .timestamp_parser import parse_station_time
from .station_decoder import StationDocumentDecoder, decode_document
from .station_fetcher import StationFetcher, fetch_station_series

__all__ = [
    "parse_station_time",
    "StationDocumentDecoder", "decode_document",
    "StationFetcher", "fetch_station_series",
]
