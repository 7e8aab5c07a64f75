"""Online summary statistics used for per-subskill and per-test baselines.

``RunningStats`` is Welford's single-pass mean/variance accumulator over an
unbounded stream; ``RollingWindow`` keeps only the most recent ``capacity``
values and reports their mean.
"""
from __future__ import annotations

from typing import List

__all__ = ["RunningStats", "RollingWindow"]


class RunningStats:
    def __init__(self) -> None:
        self.count = 0
        self.mean = 0.0
        self.m2 = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        delta2 = value - self.mean
        self.m2 += delta * delta2

    def variance(self) -> float:
        """Sample variance, ``0.0`` until at least two values were added."""

        return self.m2 / (self.count - 1) if self.count > 1 else 0.0

    def to_dict(self) -> dict:
        return {"count": self.count, "mean": self.mean, "variance": self.variance()}


class RollingWindow:
    def __init__(self, capacity: int) -> None:
        self.capacity = int(capacity)
        self._values: List[float] = []

    def push(self, value: float) -> None:
        self._values.append(value)
        if len(self._values) > self.capacity:
            self._values.pop(0)

    def mean(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)

    def values_snapshot(self) -> List[float]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)
