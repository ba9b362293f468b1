"""Rolling mean / standard deviation over a scalar series."""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np


@dataclass(frozen=True)
class RollingStats:
    mean: float
    std: float


class RollingStatistics:
    """Windowed statistics with an expanding window at the start of a series.

    At index ``i`` the window is ``[max(0, i - W + 1), i]``, so the first
    ``W - 1`` points are judged against fewer samples.
    """

    def __init__(self, window_size: int = 60):
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        self.window_size = window_size

    def window_bounds(self, index: int) -> tuple:
        return max(0, index - self.window_size + 1), index + 1

    def at(self, values: Sequence[float], index: int) -> RollingStats:
        start, end = self.window_bounds(index)
        window = np.asarray(values[start:end], dtype=float)
        mean = float(window.mean())
        # Population standard deviation
        std = float(np.sqrt(((window - mean) ** 2).mean()))
        return RollingStats(mean=mean, std=std)

    def series(self, values: Sequence[float]) -> List[RollingStats]:
        values = np.asarray(values, dtype=float)
        return [self.at(values, i) for i in range(len(values))]
