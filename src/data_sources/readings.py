"""Sensor reading sources consumed by the monitoring loop."""

import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from loguru import logger

from src.core.models import SensorReading
from src.utils.constants import MINUTES_PER_DAY, SENSOR_FIELDS


class ReadingSource(Protocol):
    def get_reading(self, node_id: str, time_minute: int) -> Optional[SensorReading]:
        ...


def _coerce(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _minute_of(timestamp: Optional[datetime]) -> Optional[int]:
    if timestamp is None:
        return None
    return timestamp.hour * 60 + timestamp.minute


def parse_reading(raw: dict, node_id: Optional[str] = None, time_minute: Optional[int] = None) -> SensorReading:
    """Build a SensorReading from a loose dict.

    Non-numeric sensor values are dropped (logged at DEBUG) rather than
    rejecting the whole record.
    """
    node_id = node_id or raw.get("node_id")
    if not node_id:
        raise ValueError("reading has no node_id")

    timestamp = raw.get("timestamp")
    if isinstance(timestamp, str):
        try:
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        except ValueError:
            timestamp = None

    if time_minute is None:
        time_minute = raw.get("time_minute", raw.get("timeMinute"))
    if time_minute is None:
        time_minute = _minute_of(timestamp) or 0

    values = {}
    for name in SENSOR_FIELDS:
        if name not in raw:
            continue
        value = _coerce(raw[name])
        if value is None:
            logger.debug(f"Node {str(node_id)[:8]}: dropping non-numeric {name}={raw[name]!r}")
            continue
        values[name] = value

    return SensorReading(
        node_id=str(node_id),
        time_minute=int(time_minute),
        values=values,
        frost_risk_flag=str(raw.get("frost_risk_flag") or "NONE"),
        timestamp=timestamp if isinstance(timestamp, datetime) else None,
    )


class StaticReadingSource:
    """Exactly one reading per node, regardless of the requested minute."""

    def __init__(self, readings: Iterable[SensorReading] = ()):
        self._readings = {r.node_id: r for r in readings}

    def get_reading(self, node_id: str, time_minute: int) -> Optional[SensorReading]:
        return self._readings.get(node_id)


class SeriesReadingSource:
    """Per-node series of readings, looked up by closest minute of day.

    Distance wraps around midnight, so minute 1439 is one minute from 0.
    """

    def __init__(self, series: Optional[Dict[str, List[SensorReading]]] = None):
        self._series: Dict[str, List[SensorReading]] = {}
        for node_id, readings in (series or {}).items():
            self.load(node_id, readings)

    def load(self, node_id: str, readings: List[SensorReading]) -> None:
        self._series[node_id] = list(readings)

    def series(self, node_id: str) -> List[SensorReading]:
        return list(self._series.get(node_id, []))

    def get_reading(self, node_id: str, time_minute: int) -> Optional[SensorReading]:
        readings = self._series.get(node_id)
        if not readings:
            return None

        best, best_diff = None, math.inf
        for reading in readings:
            minute = _minute_of(reading.timestamp)
            if minute is None:
                minute = reading.time_minute
            diff = abs(minute - time_minute) % MINUTES_PER_DAY
            diff = min(diff, MINUTES_PER_DAY - diff)
            if diff < best_diff:
                best, best_diff = reading, diff

        if best.time_minute == time_minute:
            return best
        return SensorReading(
            node_id=best.node_id,
            time_minute=time_minute,
            values=best.values,
            frost_risk_flag=best.frost_risk_flag,
            timestamp=best.timestamp,
        )

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._series
