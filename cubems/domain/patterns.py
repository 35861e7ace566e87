"""
Pattern Detection Domain Objects
================================

Plain dataclasses exchanged between the detector, the cache, the
recommendation engine and the API layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from cubems.enums import (
    ActionType,
    AlgorithmType,
    ConfidenceMethod,
    ExpertiseLevel,
    Granularity,
    MaintenanceCategory,
    OutlierHandling,
    PatternSeverity,
    PatternType,
    RecommendationPriority,
    TimeWindow,
)
from cubems.utils.time import to_iso


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class SensorReading:
    """One measurement produced by the ingestion layer."""

    timestamp: datetime
    sensor_id: str
    equipment_type: str
    value: float


@dataclass(frozen=True)
class AnalysisWindow:
    start: datetime
    end: datetime
    granularity: Granularity = Granularity.HOUR

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class AnomalyDetectionConfig:
    """Algorithm configuration for a single detection call.

    ``algorithm_type`` is accepted as a raw string too; the detector reports
    unknown values as a failed result instead of raising.
    """

    algorithm_type: AlgorithmType | str = AlgorithmType.STATISTICAL_ZSCORE
    sensitivity: int = 7
    threshold_multiplier: float = 2.5
    minimum_data_points: int = 20
    lookback_period: TimeWindow = TimeWindow.ONE_DAY
    seasonal_adjustment: bool = True
    outlier_handling: OutlierHandling = OutlierHandling.CAP
    confidence_method: ConfidenceMethod = ConfidenceMethod.STATISTICAL
    ensemble_algorithms: tuple[AlgorithmType, ...] = ()

    def __post_init__(self) -> None:
        # algorithm_type and ensemble members stay unchecked here; the detector
        # reports unknown algorithms as a failed result.
        object.__setattr__(self, "lookback_period", TimeWindow(self.lookback_period))
        object.__setattr__(self, "outlier_handling", OutlierHandling(self.outlier_handling))
        object.__setattr__(self, "confidence_method", ConfidenceMethod(self.confidence_method))
        object.__setattr__(self, "ensemble_algorithms", tuple(self.ensemble_algorithms))

    def fingerprint(self) -> dict[str, Any]:
        """Canonical, JSON-serializable form used in cache keys."""
        return _plain(asdict(self))


@dataclass(frozen=True)
class StatisticalMetrics:
    mean: float
    median: float
    std_deviation: float
    variance: float
    q1: float
    q3: float
    z_score: float
    percentile_rank: float
    normality_test: float
    seasonality_strength: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatisticalMetrics":
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class PatternDataPoint:
    timestamp: str
    value: float
    expected_value: float
    deviation: float
    is_anomaly: bool
    severity_score: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PatternDataPoint":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class PatternRecommendation:
    id: str
    priority: RecommendationPriority
    action_type: ActionType
    description: str
    estimated_cost: float
    estimated_savings: float
    time_to_implement_hours: float
    required_expertise: ExpertiseLevel
    maintenance_category: MaintenanceCategory
    success_probability: int
    urgency_deadline: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PatternRecommendation":
        return cls(
            id=data["id"],
            priority=RecommendationPriority(data["priority"]),
            action_type=ActionType(data["action_type"]),
            description=data["description"],
            estimated_cost=data["estimated_cost"],
            estimated_savings=data["estimated_savings"],
            time_to_implement_hours=data["time_to_implement_hours"],
            required_expertise=ExpertiseLevel(data["required_expertise"]),
            maintenance_category=MaintenanceCategory(data["maintenance_category"]),
            success_probability=data["success_probability"],
            urgency_deadline=data.get("urgency_deadline"),
        )


@dataclass(frozen=True)
class DetectedPattern:
    """A flagged reading together with its classification and scoring.

    ``recommendations`` stays empty until the recommendation engine runs;
    the engine returns new instances rather than mutating cached ones.
    """

    id: str
    timestamp: str
    sensor_id: str
    equipment_type: str
    floor_number: int
    pattern_type: PatternType
    severity: PatternSeverity
    confidence_score: int
    description: str
    data_points: tuple[PatternDataPoint, ...]
    created_at: str
    metadata: dict[str, Any] = field(default_factory=dict)
    recommendations: tuple[PatternRecommendation, ...] = ()
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: str | None = None

    def with_recommendations(self, recommendations: list[PatternRecommendation]) -> "DetectedPattern":
        return replace(self, recommendations=tuple(recommendations))

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DetectedPattern":
        """Rebuild a pattern from its :meth:`to_dict` form (as stored in the database)."""
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            sensor_id=data["sensor_id"],
            equipment_type=data["equipment_type"],
            floor_number=data["floor_number"],
            pattern_type=PatternType(data["pattern_type"]),
            severity=PatternSeverity(data["severity"]),
            confidence_score=data["confidence_score"],
            description=data["description"],
            data_points=tuple(PatternDataPoint.from_dict(p) for p in data.get("data_points", ())),
            created_at=data["created_at"],
            metadata=dict(data.get("metadata") or {}),
            recommendations=tuple(PatternRecommendation.from_dict(r) for r in data.get("recommendations", ())),
            acknowledged=bool(data.get("acknowledged", False)),
            acknowledged_by=data.get("acknowledged_by"),
            acknowledged_at=data.get("acknowledged_at"),
        )


@dataclass(frozen=True)
class StatisticalSummary:
    total_points_analyzed: int
    anomalies_detected: int
    confidence_distribution: dict[str, int]
    processing_time_ms: float
    sensors_analyzed: int = 0
    sensors_skipped: int = 0


@dataclass(frozen=True)
class PerformanceMetrics:
    algorithm_efficiency: float
    memory_usage_mb: float
    throughput_points_per_second: float
    parallel_workers: int = 1


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of :meth:`StatisticalAnomalyDetector.detect_anomalies`.

    Failures are reported with ``success=False`` and ``error`` set; the
    detector never raises for malformed input.
    """

    success: bool
    patterns: tuple[DetectedPattern, ...]
    statistical_summary: StatisticalSummary
    performance_metrics: PerformanceMetrics
    statistics: StatisticalMetrics | None = None
    sensor_statistics: dict[str, StatisticalMetrics] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))
