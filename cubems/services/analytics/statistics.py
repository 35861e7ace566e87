"""
Descriptive statistics for sensor series.

Pure-Python helpers used by the anomaly detector. Mean and variance are
accumulated with Welford's online algorithm so long series do not lose
precision to a naive sum-of-squares.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from cubems.domain.patterns import StatisticalMetrics

# Empirical-rule coverage of a normal distribution within 1 and 2 std.
_NORMAL_WITHIN_1_STD = 0.68
_NORMAL_WITHIN_2_STD = 0.95

DAILY_LAG = 24
MIN_POINTS_FOR_SEASONALITY = 48


class RunningStats:
    """Welford accumulator for count, mean and sample variance."""

    __slots__ = ("count", "mean", "_m2")

    def __init__(self, values: Iterable[float] = ()) -> None:
        self.count = 0
        self.mean = 0.0
        self._m2 = 0.0
        for value in values:
            self.push(value)

    def push(self, value: float) -> None:
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        self._m2 += delta * (value - self.mean)

    @property
    def variance(self) -> float:
        """Sample variance (n - 1); 0.0 for fewer than two values."""
        if self.count < 2:
            return 0.0
        return self._m2 / (self.count - 1)

    @property
    def population_variance(self) -> float:
        if self.count == 0:
            return 0.0
        return self._m2 / self.count

    @property
    def std(self) -> float:
        return math.sqrt(self.variance)


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    n = len(ordered)
    if n == 0:
        raise ValueError("median of empty sequence")
    mid = n // 2
    if n % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def median_absolute_deviation(values: Sequence[float], center: float) -> float:
    return median([abs(v - center) for v in values])


def percentile(sorted_values: Sequence[float], pct: float) -> float:
    """Linear-interpolated percentile of an already sorted sequence."""
    if not sorted_values:
        raise ValueError("percentile of empty sequence")
    index = (pct / 100) * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_values[lower]
    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def normality_score(values: Sequence[float], mean: float, std: float) -> float:
    """0-100 score of how closely the series follows the 68/95 empirical rule."""
    n = len(values)
    if n == 0:
        return 0.0
    within_1 = sum(1 for v in values if abs(v - mean) <= std) / n
    within_2 = sum(1 for v in values if abs(v - mean) <= 2 * std) / n
    score = (within_1 - _NORMAL_WITHIN_1_STD) * 50 + (within_2 - _NORMAL_WITHIN_2_STD) * 50 + 80
    return max(0.0, min(100.0, score))


def autocorrelation(values: Sequence[float], lag: int) -> float:
    n = len(values) - lag
    if n <= 0:
        return 0.0
    head = values[:n]
    tail = values[lag:]
    mean_head = sum(head) / n
    mean_tail = sum(tail) / n

    numerator = 0.0
    denom_head = 0.0
    denom_tail = 0.0
    for a, b in zip(head, tail):
        da = a - mean_head
        db = b - mean_tail
        numerator += da * db
        denom_head += da * da
        denom_tail += db * db

    denominator = math.sqrt(denom_head * denom_tail)
    return numerator / denominator if denominator > 0 else 0.0


def seasonality_strength(values: Sequence[float]) -> float:
    """Daily seasonality as lag-24 autocorrelation clamped to [0, 1]."""
    if len(values) < MIN_POINTS_FOR_SEASONALITY:
        return 0.0
    return max(0.0, min(1.0, autocorrelation(values, DAILY_LAG)))


def compute_metrics(values: Sequence[float], *, include_seasonality: bool = True) -> StatisticalMetrics:
    """Summarize a non-empty series.

    ``z_score`` is the mean absolute z-score of the series and
    ``percentile_rank`` the rank of the mean within the sorted values.
    """
    if not values:
        raise ValueError("cannot summarize an empty series")

    n = len(values)
    running = RunningStats(values)
    mean = running.mean
    std = running.std

    ordered = sorted(values)
    mean_index = next((i for i, v in enumerate(ordered) if v >= mean), n)
    avg_z = sum(abs(v - mean) / std for v in values) / n if std > 0 else 0.0

    return StatisticalMetrics(
        mean=mean,
        median=median(ordered),
        std_deviation=std,
        variance=running.variance,
        q1=percentile(ordered, 25),
        q3=percentile(ordered, 75),
        z_score=avg_z,
        percentile_rank=mean_index / n * 100,
        normality_test=normality_score(values, mean, std),
        seasonality_strength=seasonality_strength(values) if include_seasonality else None,
    )
