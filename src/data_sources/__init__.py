"""Data sources module."""

from src.data_sources.publisher import AlertPublisher, HttpAlertWriter, JsonlAlertWriter, create_publisher
from src.data_sources.readings import ReadingSource, SeriesReadingSource, StaticReadingSource, parse_reading
from src.data_sources.simulator import generate_demo_fleet, generate_fleet_series, generate_node_series

__all__ = [
    "AlertPublisher",
    "HttpAlertWriter",
    "JsonlAlertWriter",
    "create_publisher",
    "ReadingSource",
    "SeriesReadingSource",
    "StaticReadingSource",
    "parse_reading",
    "generate_demo_fleet",
    "generate_fleet_series",
    "generate_node_series",
]
