"""
Pattern Detection Enumerations
==============================

Enums shared by the anomaly detector, the pattern cache and the detection API.
"""

from enum import Enum


class EquipmentType(str, Enum):
    """Building equipment categories reported by sensors."""

    HVAC = "HVAC"
    LIGHTING = "Lighting"
    POWER = "Power"
    WATER = "Water"
    SECURITY = "Security"

    def __str__(self) -> str:
        return self.value


class PatternType(str, Enum):
    """Classification assigned to a detected pattern."""

    ANOMALY = "anomaly"
    TREND = "trend"
    CORRELATION = "correlation"
    SEASONAL = "seasonal"
    THRESHOLD = "threshold"
    FREQUENCY = "frequency"

    def __str__(self) -> str:
        return self.value


class PatternSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    def __str__(self) -> str:
        return self.value


class AlgorithmType(str, Enum):
    """
    Detection algorithms.
    Whole-series scorers: statistical_zscore, modified_zscore, interquartile_range
    """

    STATISTICAL_ZSCORE = "statistical_zscore"
    MODIFIED_ZSCORE = "modified_zscore"
    INTERQUARTILE_RANGE = "interquartile_range"
    MOVING_AVERAGE = "moving_average"
    SEASONAL_DECOMPOSITION = "seasonal_decomposition"

    def __str__(self) -> str:
        return self.value


class ConfidenceMethod(str, Enum):
    STATISTICAL = "statistical"
    HISTORICAL = "historical"
    ENSEMBLE = "ensemble"

    def __str__(self) -> str:
        return self.value


class OutlierHandling(str, Enum):
    CAP = "cap"
    REMOVE = "remove"
    FLAG = "flag"

    def __str__(self) -> str:
        return self.value


class TimeWindow(str, Enum):
    """Lookback windows accepted by the detection API."""

    ONE_HOUR = "1h"
    SIX_HOURS = "6h"
    ONE_DAY = "24h"
    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"

    def __str__(self) -> str:
        return self.value


class Granularity(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    def __str__(self) -> str:
        return self.value


class SubscriptionTier(str, Enum):
    FREE = "free"
    PROFESSIONAL = "professional"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_session(cls, value: object) -> "SubscriptionTier":
        """Resolve a session tier string, falling back to the most restrictive tier."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.FREE
