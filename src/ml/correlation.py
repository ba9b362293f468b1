"""Co-movement analysis around detected anomalies."""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from src.core.models import Anomaly, AnomalyWithCorrelations, CorrelatedField, SensorReading
from src.ml.anomaly import readings_frame
from src.utils.config import AnomalyConfig
from src.utils.constants import ANALYZED_FIELDS, MINUTES_PER_DAY


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson r; 0 for empty, mismatched or zero-variance input."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if len(x) != len(y) or len(x) == 0:
        return 0.0

    n = len(x)
    numerator = n * np.dot(x, y) - x.sum() * y.sum()
    denominator = np.sqrt((n * np.dot(x, x) - x.sum() ** 2) * (n * np.dot(y, y) - y.sum() ** 2))
    if denominator == 0 or not np.isfinite(denominator):
        return 0.0
    return float(numerator / denominator)


class CorrelationAnalyzer:
    """Find fields that moved together with an anomalous field."""

    def __init__(self, config: Optional[AnomalyConfig] = None, fields: Optional[list] = None):
        self.config = config or AnomalyConfig()
        self.fields = fields or list(ANALYZED_FIELDS)

    def window(self, frame: pd.DataFrame, time_minute: int) -> pd.DataFrame:
        half = self.config.correlation_window_minutes
        start = max(0, time_minute - half)
        end = min(MINUTES_PER_DAY - 1, time_minute + half)
        return frame[(frame["time_minute"] >= start) & (frame["time_minute"] <= end)]

    def correlation_matrix(self, readings: List[SensorReading], anomaly: Anomaly) -> dict:
        """field -> field -> r over the anomaly's time window."""
        window = self.window(readings_frame(readings, self.fields), anomaly.time_minute)
        matrix = {}
        for a in self.fields:
            matrix[a] = {b: self._pairwise(window, a, b) for b in self.fields}
        return matrix

    def top_correlations(self, anomaly: Anomaly, readings: List[SensorReading]) -> List[CorrelatedField]:
        frame = readings_frame(readings, self.fields)
        return self._top_from_frame(frame, anomaly)

    def annotate(self, anomalies: List[Anomaly], readings: List[SensorReading]) -> List[AnomalyWithCorrelations]:
        frame = readings_frame(readings, self.fields)
        return [
            AnomalyWithCorrelations(anomaly=a, correlations=self._top_from_frame(frame, a))
            for a in anomalies
        ]

    def _top_from_frame(self, frame: pd.DataFrame, anomaly: Anomaly) -> List[CorrelatedField]:
        if anomaly.field not in self.fields:
            return []

        at_minute = frame[frame["time_minute"] == anomaly.time_minute]
        if at_minute.empty:
            return []
        current = at_minute.iloc[0]
        window = self.window(frame, anomaly.time_minute)

        results = []
        for other in self.fields:
            if other == anomaly.field:
                continue
            r = self._pairwise(window, anomaly.field, other)
            if abs(r) < self.config.correlation_threshold:
                continue

            current_value = current[other]
            if pd.isna(current_value):
                continue
            field_mean = window[other].mean()
            results.append(CorrelatedField(
                field=other,
                correlation=r,
                current_value=float(current_value),
                delta_value=float(current_value - field_mean),
            ))

        results.sort(key=lambda c: abs(c.correlation), reverse=True)
        return results[: self.config.top_n]

    @staticmethod
    def _pairwise(window: pd.DataFrame, a: str, b: str) -> float:
        pair = window[[a, b]].dropna() if a != b else window[[a]].dropna()
        if a == b:
            return pearson_correlation(pair[a], pair[a])
        return pearson_correlation(pair[a], pair[b])
