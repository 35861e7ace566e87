"""
Pattern Detection Service

Runs one detection request end to end: tier gating, window resolution,
reading fetch, cached or fresh detection, filtering, optional
recommendations and response shaping.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Callable, Sequence

from cubems.config import AppConfig
from cubems.domain.exceptions import (
    DetectionFailedError,
    NoDataError,
    RepositoryError,
    ResourceLimitError,
    TierLimitError,
)
from cubems.domain.patterns import (
    AnalysisWindow,
    AnomalyDetectionConfig,
    DetectedPattern,
    DetectionResult,
)
from cubems.enums import (
    AlgorithmType,
    ConfidenceMethod,
    ExpertiseLevel,
    Granularity,
    OutlierHandling,
    PatternSeverity,
    PatternType,
    RecommendationPriority,
    SubscriptionTier,
    TimeWindow,
)
from cubems.schemas.patterns import PatternDetectionRequest
from cubems.services.analytics.anomaly_detector import StatisticalAnomalyDetector
from cubems.services.analytics.catalog import MaintenanceCatalog
from cubems.services.analytics.pattern_cache import PatternDetectionCache
from cubems.services.analytics.recommendation_engine import (
    RecommendationContext,
    RecommendationEngine,
    roi_percent,
)
from cubems.services.protocols import DetectedPatternStore, ReadingSource
from cubems.utils.ids import error_id
from cubems.utils.time import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)

FREE_TIER_MAX_SENSORS = 5
FREE_TIER_WINDOWS = frozenset({TimeWindow.ONE_HOUR, TimeWindow.SIX_HOURS, TimeWindow.ONE_DAY})
FREE_TIER_PATTERN_TYPES = (PatternType.ANOMALY, PatternType.THRESHOLD)
HIGH_CONFIDENCE = 80
HISTORICAL_ACCURACY = 85

WINDOW_LENGTHS: dict[TimeWindow, timedelta] = {
    TimeWindow.ONE_HOUR: timedelta(hours=1),
    TimeWindow.SIX_HOURS: timedelta(hours=6),
    TimeWindow.ONE_DAY: timedelta(days=1),
    TimeWindow.SEVEN_DAYS: timedelta(days=7),
    TimeWindow.THIRTY_DAYS: timedelta(days=30),
}

WINDOW_GRANULARITY: dict[TimeWindow, Granularity] = {
    TimeWindow.ONE_HOUR: Granularity.MINUTE,
    TimeWindow.SIX_HOURS: Granularity.MINUTE,
    TimeWindow.ONE_DAY: Granularity.HOUR,
    TimeWindow.SEVEN_DAYS: Granularity.DAY,
    TimeWindow.THIRTY_DAYS: Granularity.DAY,
}

MINIMUM_DATA_POINTS: dict[TimeWindow, int] = {
    TimeWindow.ONE_HOUR: 10,
    TimeWindow.SIX_HOURS: 20,
    TimeWindow.ONE_DAY: 30,
    TimeWindow.SEVEN_DAYS: 50,
    TimeWindow.THIRTY_DAYS: 100,
}

NO_DATA_SUGGESTIONS = [
    "Check if sensor IDs are correct",
    "Try a different time window",
    "Ensure sensors have recent data",
]

DETECTION_FAILURE_SUGGESTIONS = [
    "Try reducing the number of sensors",
    "Use a shorter time window",
    "Check sensor data quality",
    "Contact support if issue persists",
]

RESOURCE_LIMIT_SUGGESTIONS = [
    "Reduce the number of sensors (max 50)",
    "Use a shorter time window",
    "Increase confidence threshold to reduce results",
    "Try basic algorithm type instead of advanced",
]

RECOMMENDATION_FAILURE_WARNING = "Failed to generate recommendations"
PERSISTENCE_FAILURE_WARNING = "Detected patterns could not be saved for acknowledgment"

DetectorFactory = Callable[[AnomalyDetectionConfig], StatisticalAnomalyDetector]


def analysis_window(time_window: TimeWindow, now) -> AnalysisWindow:
    """``[now - window, now]`` at the window's reporting granularity."""
    time_window = TimeWindow(time_window)
    return AnalysisWindow(
        start=now - WINDOW_LENGTHS[time_window],
        end=now,
        granularity=WINDOW_GRANULARITY[time_window],
    )


@dataclass(frozen=True)
class DetectionOutcome:
    """Shaped result of a detection request, ready for the API layer."""

    patterns: list[DetectedPattern]
    summary: dict[str, Any]
    analysis_metadata: dict[str, Any]
    tier: SubscriptionTier
    processing_time_ms: float
    sla_compliant: bool
    cache_hit_rate: float
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "patterns": [p.to_dict() for p in self.patterns],
            "summary": self.summary,
            "analysis_metadata": self.analysis_metadata,
        }

    def headers(self) -> dict[str, str]:
        return {
            "Cache-Control": "private, max-age=300",
            "X-Processing-Time": f"{round(self.processing_time_ms)}ms",
            "X-Patterns-Detected": str(len(self.patterns)),
            "X-User-Tier": str(self.tier),
            "X-SLA-Compliant": str(self.sla_compliant).lower(),
            "X-Cache-Hit-Rate": f"{self.cache_hit_rate * 100:.1f}%",
        }


class PatternDetectionService:
    """
    Orchestrates anomaly detection for the detection endpoint.

    Args:
        reading_source: Where sensor readings come from (SQLite repository in production)
        cache: Pattern result and statistics cache
        recommendation_engine: Engine used for professional-tier recommendations
        pattern_store: Persistence for detected patterns (enables acknowledgment)
        catalog: Static building and maintenance tables
        config: Application configuration
        detector_factory: Builds a detector for one algorithm configuration
        clock: Source of "now" for window bounds and timestamps
    """

    def __init__(
        self,
        reading_source: ReadingSource,
        cache: PatternDetectionCache,
        recommendation_engine: RecommendationEngine,
        pattern_store: DetectedPatternStore,
        catalog: MaintenanceCatalog,
        config: AppConfig,
        *,
        detector_factory: DetectorFactory | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.reading_source = reading_source
        self.cache = cache
        self.recommendation_engine = recommendation_engine
        self.pattern_store = pattern_store
        self.catalog = catalog
        self.config = config
        self.clock = clock
        self.detector_factory = detector_factory or self._default_detector

    def _default_detector(self, detection_config: AnomalyDetectionConfig) -> StatisticalAnomalyDetector:
        return StatisticalAnomalyDetector(
            detection_config,
            catalog=self.catalog,
            clock=self.clock,
            max_workers=self.config.detector_workers,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def detect(self, request: PatternDetectionRequest, *, user_id: str, tier: SubscriptionTier) -> DetectionOutcome:
        started = time.perf_counter()
        professional = tier is SubscriptionTier.PROFESSIONAL

        pattern_types = self.enforce_tier(request, tier)
        now = self.clock()
        window = analysis_window(request.time_window, now)
        detection_config = self.build_config(request, professional=professional)

        result = self.cache.get_pattern_results(request.sensor_ids, request.time_window, detection_config)
        cache_hit = result is not None
        if not cache_hit:
            result = self._run_detection(request, detection_config, window)
            self.cache.cache_pattern_results(request.sensor_ids, request.time_window, detection_config, result)
            for sensor_id, stats in result.sensor_statistics.items():
                self.cache.cache_statistics(sensor_id, request.time_window, stats)
        else:
            logger.debug("Pattern cache hit for %s sensor(s) over %s", len(request.sensor_ids), request.time_window)

        patterns = self.filter_patterns(
            list(result.patterns),
            confidence_threshold=request.confidence_threshold,
            severity_filter=request.severity_filter,
            pattern_types=pattern_types,
        )
        if cache_hit:
            patterns = self._with_stored_acknowledgments(patterns)

        warnings: list[str] = []
        if request.include_recommendations and professional:
            try:
                patterns = self.recommendation_engine.generate_recommendations(patterns, self.recommendation_context())
            except Exception:
                logger.exception("Recommendation generation failed for user %s", user_id)
                warnings.append(RECOMMENDATION_FAILURE_WARNING)

        self._persist(patterns, warnings)

        processing_ms = (time.perf_counter() - started) * 1000
        sla_budget = self.catalog.performance_sla_ms(len(request.sensor_ids))
        sla_compliant = processing_ms <= sla_budget
        if not sla_compliant:
            logger.warning(
                "[SLA VIOLATION] Pattern detection took %.2fms against a %sms budget "
                "(sensors=%s, overage=%.1f%%, user=%s)",
                processing_ms,
                sla_budget,
                len(request.sensor_ids),
                (processing_ms / sla_budget - 1) * 100,
                user_id,
            )

        cache_stats = self.cache.get_stats()
        summary = self.summarize(patterns)
        metadata = self._analysis_metadata(
            request,
            detection_config,
            result,
            patterns,
            professional=professional,
            processing_ms=processing_ms,
            sla_budget=sla_budget,
            sla_compliant=sla_compliant,
            cache_stats=cache_stats,
            now=now,
        )

        logger.info(
            "Pattern detection: user=%s tier=%s sensors=%s window=%s patterns=%s time=%sms cache_hit_rate=%.1f%%",
            user_id,
            tier,
            len(request.sensor_ids),
            request.time_window,
            len(patterns),
            round(processing_ms),
            cache_stats.get("hit_rate", 0.0) * 100,
        )

        return DetectionOutcome(
            patterns=patterns,
            summary=summary,
            analysis_metadata=metadata,
            tier=tier,
            processing_time_ms=processing_ms,
            sla_compliant=sla_compliant,
            cache_hit_rate=cache_stats.get("hit_rate", 0.0),
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    @staticmethod
    def enforce_tier(
        request: PatternDetectionRequest, tier: SubscriptionTier
    ) -> Sequence[PatternType] | None:
        """Apply subscription limits; returns the pattern types to keep."""
        if tier is SubscriptionTier.PROFESSIONAL:
            return request.pattern_types

        if len(request.sensor_ids) > FREE_TIER_MAX_SENSORS:
            raise TierLimitError(
                f"Free tier is limited to {FREE_TIER_MAX_SENSORS} sensors. "
                "Upgrade to Professional for unlimited analysis."
            )
        if TimeWindow(request.time_window) not in FREE_TIER_WINDOWS:
            raise TierLimitError("Extended time windows require Professional subscription.")
        return FREE_TIER_PATTERN_TYPES

    def build_config(self, request: PatternDetectionRequest, *, professional: bool) -> AnomalyDetectionConfig:
        algo = request.algorithm_config
        algorithm_type = algo.algorithm_type if algo else AlgorithmType.STATISTICAL_ZSCORE
        ensemble: tuple[AlgorithmType, ...] = ()
        if professional:
            ensemble = tuple(
                AlgorithmType(name) for name in self.config.ensemble_algorithms if AlgorithmType(name) != algorithm_type
            )
        return AnomalyDetectionConfig(
            algorithm_type=algorithm_type,
            sensitivity=algo.sensitivity if algo else 7,
            threshold_multiplier=algo.threshold_multiplier if algo else 2.5,
            minimum_data_points=MINIMUM_DATA_POINTS[TimeWindow(request.time_window)],
            lookback_period=request.time_window,
            seasonal_adjustment=algo.seasonal_adjustment if algo else True,
            outlier_handling=OutlierHandling.CAP,
            confidence_method=ConfidenceMethod.ENSEMBLE if professional else ConfidenceMethod.STATISTICAL,
            ensemble_algorithms=ensemble,
        )

    def _run_detection(
        self,
        request: PatternDetectionRequest,
        detection_config: AnomalyDetectionConfig,
        window: AnalysisWindow,
    ) -> DetectionResult:
        readings = self.reading_source.fetch_window(request.sensor_ids, window.start, window.end)
        if not readings:
            raise NoDataError(
                "No sensor data found for the specified time window and sensors.",
                detail={"suggestions": NO_DATA_SUGGESTIONS},
            )
        if len(readings) > self.config.max_analysis_points:
            logger.warning(
                "Rejecting analysis of %s readings (limit %s)", len(readings), self.config.max_analysis_points
            )
            raise ResourceLimitError(
                "The analysis request requires too many resources",
                detail={"suggestions": RESOURCE_LIMIT_SUGGESTIONS},
            )

        detector = self.detector_factory(detection_config)
        try:
            result = detector.detect_anomalies(readings, window)
        except MemoryError:
            logger.exception("Detector ran out of memory on %s readings", len(readings))
            raise ResourceLimitError(
                "The analysis request requires too many resources",
                detail={"suggestions": RESOURCE_LIMIT_SUGGESTIONS},
            ) from None

        if not result.success:
            raise DetectionFailedError(
                result.error or "Unknown detection error",
                error_id=error_id("PD"),
                suggestions=DETECTION_FAILURE_SUGGESTIONS,
            )
        return result

    @staticmethod
    def filter_patterns(
        patterns: list[DetectedPattern],
        *,
        confidence_threshold: float,
        severity_filter: Sequence[PatternSeverity] | None = None,
        pattern_types: Sequence[PatternType] | None = None,
    ) -> list[DetectedPattern]:
        """Confidence threshold, then severity, then pattern type."""
        kept = [p for p in patterns if p.confidence_score >= confidence_threshold]
        if severity_filter:
            severities = {PatternSeverity(s) for s in severity_filter}
            kept = [p for p in kept if p.severity in severities]
        if pattern_types:
            types = {PatternType(t) for t in pattern_types}
            kept = [p for p in kept if p.pattern_type in types]
        return kept

    def recommendation_context(self) -> RecommendationContext:
        return RecommendationContext(
            operational_criticality=self.config.operational_criticality,
            available_expertise=(ExpertiseLevel.BASIC, ExpertiseLevel.TECHNICIAN, ExpertiseLevel.ENGINEER),
            equipment_age_months=60,
            last_maintenance_date=to_iso(self.clock() - timedelta(days=30)),
            failure_history=2,
            budget_constraints=50_000,
            maintenance_window_hours=8,
        )

    def _with_stored_acknowledgments(self, patterns: list[DetectedPattern]) -> list[DetectedPattern]:
        """Cached results predate later acknowledgments; refresh that state from the store."""
        refreshed = []
        for pattern in patterns:
            try:
                stored = self.pattern_store.get_pattern(pattern.id)
            except RepositoryError:
                logger.exception("Could not read acknowledgment state for pattern %s", pattern.id)
                stored = None
            if stored is not None and stored.acknowledged:
                pattern = replace(
                    pattern,
                    acknowledged=True,
                    acknowledged_by=stored.acknowledged_by,
                    acknowledged_at=stored.acknowledged_at,
                )
            refreshed.append(pattern)
        return refreshed

    def _persist(self, patterns: list[DetectedPattern], warnings: list[str]) -> None:
        if not patterns:
            return
        try:
            self.pattern_store.save_patterns(patterns)
        except RepositoryError:
            logger.exception("Failed to persist %s detected pattern(s)", len(patterns))
            warnings.append(PERSISTENCE_FAILURE_WARNING)

    # ------------------------------------------------------------------
    # Response shaping
    # ------------------------------------------------------------------

    @staticmethod
    def summarize(patterns: list[DetectedPattern]) -> dict[str, Any]:
        by_type: dict[str, int] = {}
        for pattern in patterns:
            by_type[str(pattern.pattern_type)] = by_type.get(str(pattern.pattern_type), 0) + 1

        recommendations = [rec for p in patterns for rec in p.recommendations]
        summary: dict[str, Any] = {
            "total_patterns": len(patterns),
            "by_severity": {
                severity.value: sum(1 for p in patterns if p.severity is severity) for severity in PatternSeverity
            },
            "by_type": by_type,
            "high_confidence_count": sum(1 for p in patterns if p.confidence_score >= HIGH_CONFIDENCE),
            "average_confidence": (
                round(sum(p.confidence_score for p in patterns) / len(patterns)) if patterns else 0
            ),
            "recommendations_count": len(recommendations),
            "critical_actions_required": sum(
                1
                for p in patterns
                if p.severity is PatternSeverity.CRITICAL
                and any(r.priority is RecommendationPriority.HIGH for r in p.recommendations)
            ),
        }
        if recommendations:
            total_cost = sum(r.estimated_cost for r in recommendations)
            total_savings = sum(r.estimated_savings for r in recommendations)
            summary["total_estimated_cost"] = round(total_cost, 2)
            summary["total_estimated_savings"] = round(total_savings, 2)
            summary["portfolio_roi_percent"] = round(roi_percent(total_savings, total_cost), 1)
        return summary

    def _analysis_metadata(
        self,
        request: PatternDetectionRequest,
        detection_config: AnomalyDetectionConfig,
        result: DetectionResult,
        patterns: list[DetectedPattern],
        *,
        professional: bool,
        processing_ms: float,
        sla_budget: int,
        sla_compliant: bool,
        cache_stats: dict[str, Any],
        now,
    ) -> dict[str, Any]:
        algorithms = [str(detection_config.algorithm_type)]
        if detection_config.confidence_method is ConfidenceMethod.ENSEMBLE:
            algorithms.extend(str(a) for a in detection_config.ensemble_algorithms)

        return {
            "analysis_duration_ms": max(1, round(processing_ms)),
            "sensors_analyzed": len(request.sensor_ids),
            "data_points_processed": result.statistical_summary.total_points_analyzed,
            "algorithms_used": algorithms,
            "confidence_calibration": {
                "historical_accuracy": HISTORICAL_ACCURACY,
                "sample_size": len(patterns),
                "calibration_date": to_iso(now),
                "reliability_score": min(95, 80 + (10 if professional else 0)),
            },
            "performance_metrics": {
                "cpu_usage_ms": round(processing_ms),
                "memory_peak_mb": result.performance_metrics.memory_usage_mb,
                "cache_hit_rate": cache_stats.get("hit_rate", 0.0),
                "cache_entries": cache_stats.get("total_entries", 0),
                "algorithm_efficiency": result.performance_metrics.algorithm_efficiency,
                "sla_compliant": sla_compliant,
                "sla_budget_ms": sla_budget,
                "parallel_workers": result.performance_metrics.parallel_workers,
            },
        }
