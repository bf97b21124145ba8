from __future__ import annotations

from typing import Deque
from dataclasses import dataclass, field
from collections import deque
import time
import numpy as np


def sq(d: float) -> float:
    return d * d


def round_half_away(a) -> np.ndarray:
    """
    Round to the nearest integer with halves going away from zero (C `round`),
    unlike np.rint which rounds halves to even.
    """
    a = np.asarray(a, dtype=np.float64)
    return (np.sign(a) * np.floor(np.abs(a) + 0.5)).astype(np.int64)


@dataclass(slots=True)
class RateTimer:
    """
    Simple rate tracker for loop diagnostics.

    Usage:
        rt = RateTimer(window=50)
        for it in range(n):
            # work...
            its = rt.tick()
    """
    window: int = 50
    _times: Deque[float] = field(default_factory=deque, repr=False)

    def __post_init__(self) -> None:
        self._times = deque(maxlen=self.window)

    def tick(self) -> float:
        t = time.perf_counter()
        self._times.append(t)
        if len(self._times) < 2:
            return 0.0
        dt = (self._times[-1] - self._times[0]) / (len(self._times) - 1)
        return 0.0 if dt <= 0 else 1.0 / dt


@dataclass(slots=True)
class RunningStats:
    """
    Online mean/std using Welford's algorithm.
    """
    n: int = 0
    mean: float = 0.0
    m2: float = 0.0

    def add(self, x: float) -> None:
        self.n += 1
        d = x - self.mean
        self.mean += d / self.n
        d2 = x - self.mean
        self.m2 += d * d2

    @property
    def variance(self) -> float:
        return self.m2 / (self.n - 1) if self.n > 1 else 0.0

    @property
    def std(self) -> float:
        return self.variance ** 0.5
