"""Remaining-time estimation from completed attempt durations."""

from typing import List


class EtaEstimator:
    """Plain running-average estimator.

    Samples are the wall-clock durations (ms) of successful attempts. The
    average is not weighted, so early outliers skew the estimate until more
    samples arrive.
    """

    def __init__(self, concurrency_budget: int = 1):
        self.concurrency_budget = max(1, int(concurrency_budget))
        self._samples: List[float] = []

    def record(self, duration_ms: float) -> None:
        self._samples.append(max(0.0, float(duration_ms)))

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def average_ms(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    def estimate(self, remaining: int) -> float:
        """Projected remaining time in milliseconds."""
        if not self._samples or remaining <= 0:
            return 0.0
        return self.average_ms * remaining / self.concurrency_budget
