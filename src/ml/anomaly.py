"""Rolling z-score anomaly detection for sensor time series."""

import math
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
from loguru import logger

from src.core.models import Anomaly, SensorReading
from src.ml.rolling import RollingStatistics
from src.utils.config import AnomalyConfig
from src.utils.constants import ANALYZED_FIELDS


def readings_frame(readings: Iterable[SensorReading], fields: Optional[list] = None) -> pd.DataFrame:
    """Tabulate readings; non-numeric values become NaN."""
    fields = fields or ANALYZED_FIELDS
    rows = [{"time_minute": r.time_minute, **{f: r.get(f) for f in fields}} for r in readings]
    frame = pd.DataFrame(rows, columns=["time_minute", *fields])
    for f in fields:
        frame[f] = pd.to_numeric(frame[f], errors="coerce")
    return frame


class AnomalyDetector:
    """Flag values more than ``threshold`` rolling standard deviations from the mean."""

    def __init__(self, config: Optional[AnomalyConfig] = None, fields: Optional[list] = None):
        self.config = config or AnomalyConfig()
        self.fields = fields or list(ANALYZED_FIELDS)

    @property
    def threshold(self) -> float:
        return self.config.threshold

    def detect(self, readings: List[SensorReading]) -> List[Anomaly]:
        frame = readings_frame(readings, self.fields)
        anomalies = []
        for f in self.fields:
            anomalies.extend(self._detect_field(frame, f))

        # Stable: same-minute anomalies keep field order
        anomalies.sort(key=lambda a: a.time_minute)
        logger.debug(f"Detected {len(anomalies)} anomalies across {len(self.fields)} fields")
        return anomalies

    def _detect_field(self, frame: pd.DataFrame, field: str) -> List[Anomaly]:
        valid = frame[["time_minute", field]].dropna()
        dropped = len(frame) - len(valid)
        if dropped:
            logger.debug(f"{field}: excluded {dropped} non-numeric values")

        values = valid[field].to_numpy(dtype=float)
        minutes = valid["time_minute"].to_numpy()
        stats = RollingStatistics(self.config.window_size)
        threshold = self.config.threshold

        found = []
        for i, value in enumerate(values):
            s = stats.at(values, i)
            if s.std == 0 or not math.isfinite(s.std):
                continue

            z = (value - s.mean) / s.std
            if abs(z) > threshold:
                found.append(Anomaly(
                    time_minute=int(minutes[i]),
                    field=field,
                    value=float(value),
                    z_score=float(z),
                    expected_mean=s.mean,
                    expected_std=s.std,
                    expected_min=s.mean - threshold * s.std,
                    expected_max=s.mean + threshold * s.std,
                ))
        return found


def detect_anomalies(
    readings: List[SensorReading],
    threshold: float = 2.5,
    window_size: int = 60,
) -> List[Anomaly]:
    return AnomalyDetector(AnomalyConfig(threshold=threshold, window_size=window_size)).detect(readings)


def format_time_minute(minute: int) -> str:
    """Minute of day as HH:MM."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def summarize(anomalies: List[Anomaly]) -> dict:
    """Count anomalies per field and report the strongest one."""
    if not anomalies:
        return {"total": 0, "by_field": {}, "max_abs_z": 0.0}
    by_field = {}
    for a in anomalies:
        by_field[a.field] = by_field.get(a.field, 0) + 1
    return {
        "total": len(anomalies),
        "by_field": by_field,
        "max_abs_z": float(np.max([abs(a.z_score) for a in anomalies])),
    }
