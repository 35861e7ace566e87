"""
Statistical Anomaly Detector
============================

Scores building sensor series with one of five algorithms and turns flagged
readings into :class:`~cubems.domain.patterns.DetectedPattern` objects.

Algorithms:
    statistical_zscore      |x - mean| / std against ``threshold_multiplier``
    modified_zscore         0.6745 * |x - median| / MAD (robust to contamination)
    interquartile_range     outside [Q1 - k*IQR, Q3 + k*IQR], k = 1.5 * sensitivity / 5
    moving_average          distance from a trailing window mean, in window std
    seasonal_decomposition  z-score after removing the equipment's daily curve

Sensors are analysed independently on a thread pool; a sensor with fewer than
``minimum_data_points`` readings is skipped, not failed. Malformed input is
reported through ``DetectionResult.success``; :meth:`detect_anomalies` does
not raise.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

from cubems.domain.patterns import (
    AnalysisWindow,
    AnomalyDetectionConfig,
    DetectedPattern,
    DetectionResult,
    PatternDataPoint,
    PerformanceMetrics,
    SensorReading,
    StatisticalMetrics,
    StatisticalSummary,
)
from cubems.enums import AlgorithmType, ConfidenceMethod, PatternSeverity, PatternType
from cubems.services.analytics.catalog import MaintenanceCatalog, load_catalog
from cubems.services.analytics.statistics import (
    MIN_POINTS_FOR_SEASONALITY,
    RunningStats,
    compute_metrics,
    median,
    median_absolute_deviation,
    percentile,
)
from cubems.services.protocols import IdGenerator
from cubems.utils.ids import UuidIdGenerator
from cubems.utils.time import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)

MODIFIED_ZSCORE_CONSTANT = 0.6745
IQR_FENCE_FACTOR = 1.5
MAX_MOVING_WINDOW = 20

_METHOD_CONFIDENCE_FACTORS: dict[AlgorithmType, float] = {
    AlgorithmType.MODIFIED_ZSCORE: 1.1,
    AlgorithmType.INTERQUARTILE_RANGE: 0.9,
    AlgorithmType.MOVING_AVERAGE: 0.95,
}


@dataclass(frozen=True)
class _PointScore:
    score: float
    expected: float
    deviation: float
    flagged: bool


@dataclass(frozen=True)
class _Scoring:
    """Per-index scores of one algorithm over one sensor series."""

    algorithm: AlgorithmType
    points: list[_PointScore | None]
    stats: StatisticalMetrics
    severity_baseline: float


@dataclass(frozen=True)
class _SensorOutcome:
    sensor_id: str
    patterns: list[DetectedPattern]
    stats: StatisticalMetrics
    points: int


class StatisticalAnomalyDetector:
    """Detect anomalous readings across a set of sensors.

    Args:
        config: Algorithm configuration (defaults to z-score, threshold 2.5).
        catalog: Building/equipment configuration for floors and daily curves.
        id_generator: Source of pattern ids.
        clock: Source of ``created_at`` timestamps.
        max_workers: Size of the per-sensor worker pool.
    """

    def __init__(
        self,
        config: AnomalyDetectionConfig | None = None,
        *,
        catalog: MaintenanceCatalog | None = None,
        id_generator: IdGenerator | None = None,
        clock: Clock = utc_now,
        max_workers: int = 4,
    ) -> None:
        self.config = config or AnomalyDetectionConfig()
        self.catalog = catalog or load_catalog()
        self.id_generator = id_generator or UuidIdGenerator()
        self.clock = clock
        self.max_workers = max(1, max_workers)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def detect_anomalies(self, readings: Sequence[SensorReading], window: AnalysisWindow) -> DetectionResult:
        started = time.perf_counter()
        total = len(readings) if readings else 0

        if total == 0:
            return self._failure("No data points provided", 0, started)

        try:
            algorithm = AlgorithmType(self.config.algorithm_type)
        except ValueError:
            return self._failure(f"Unsupported algorithm type: {self.config.algorithm_type}", total, started)

        problem = self._validate_config()
        if problem:
            return self._failure(problem, total, started)

        if total < self.config.minimum_data_points:
            return self._failure(
                f"Insufficient data points. Required: {self.config.minimum_data_points}, provided: {total}",
                total,
                started,
            )

        try:
            groups = self._group_by_sensor(readings)
            eligible = {sid: pts for sid, pts in groups.items() if len(pts) >= self.config.minimum_data_points}
            skipped = len(groups) - len(eligible)
            if skipped:
                logger.debug(
                    "Skipping %s sensor(s) with fewer than %s readings",
                    skipped,
                    self.config.minimum_data_points,
                )

            workers = min(self.max_workers, len(eligible)) or 1
            outcomes = self._analyse_all(eligible, algorithm, window, workers)
        except Exception as exc:
            logger.exception("Anomaly detection failed")
            return self._failure(f"Anomaly detection analysis failed: {exc}", total, started)

        patterns = [p for outcome in outcomes for p in outcome.patterns]
        sensor_stats = {outcome.sensor_id: outcome.stats for outcome in outcomes}
        elapsed_ms = (time.perf_counter() - started) * 1000
        safe_ms = max(elapsed_ms, 1e-3)

        summary = StatisticalSummary(
            total_points_analyzed=total,
            anomalies_detected=len(patterns),
            confidence_distribution=self._confidence_distribution(patterns),
            processing_time_ms=round(elapsed_ms, 3),
            sensors_analyzed=len(outcomes),
            sensors_skipped=skipped,
        )
        performance = PerformanceMetrics(
            algorithm_efficiency=round(total / safe_ms, 3),
            memory_usage_mb=self.estimate_memory_mb(total),
            throughput_points_per_second=round(total / safe_ms * 1000, 1),
            parallel_workers=workers,
        )
        return DetectionResult(
            success=True,
            patterns=tuple(patterns),
            statistical_summary=summary,
            performance_metrics=performance,
            statistics=outcomes[0].stats if outcomes else None,
            sensor_statistics=sensor_stats,
        )

    # ------------------------------------------------------------------
    # Per-sensor analysis
    # ------------------------------------------------------------------

    def _analyse_all(
        self,
        groups: dict[str, list[SensorReading]],
        algorithm: AlgorithmType,
        window: AnalysisWindow,
        workers: int,
    ) -> list[_SensorOutcome]:
        sensor_ids = sorted(groups)
        if workers == 1:
            return [self._analyse_sensor(sid, groups[sid], algorithm, window) for sid in sensor_ids]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="detector") as pool:
            futures = [pool.submit(self._analyse_sensor, sid, groups[sid], algorithm, window) for sid in sensor_ids]
            return [future.result() for future in futures]

    def _analyse_sensor(
        self,
        sensor_id: str,
        readings: list[SensorReading],
        algorithm: AlgorithmType,
        window: AnalysisWindow,
    ) -> _SensorOutcome:
        ordered = sorted(readings, key=lambda r: r.timestamp)
        values = [r.value for r in ordered]
        stats = compute_metrics(values, include_seasonality=self.config.seasonal_adjustment)

        primary = self._score(algorithm, ordered, values, stats)
        members = self._ensemble_members(algorithm, ordered, values, stats, primary)

        threshold = self.config.threshold_multiplier
        patterns: list[DetectedPattern] = []
        for index, point in enumerate(primary.points):
            if point is None or not point.flagged:
                continue
            confidence = self._confidence(index, primary, members)
            if confidence < threshold * 20:
                continue
            patterns.append(self._build_pattern(sensor_id, ordered[index], point, primary, confidence, members, window))

        return _SensorOutcome(sensor_id=sensor_id, patterns=patterns, stats=stats, points=len(ordered))

    def _score(
        self,
        algorithm: AlgorithmType,
        readings: list[SensorReading],
        values: list[float],
        stats: StatisticalMetrics,
    ) -> _Scoring:
        if algorithm is AlgorithmType.MODIFIED_ZSCORE:
            return self._modified_zscore(values, stats)
        if algorithm is AlgorithmType.INTERQUARTILE_RANGE:
            return self._iqr(values, stats)
        if algorithm is AlgorithmType.MOVING_AVERAGE:
            return self._moving_average(values, stats)
        if algorithm is AlgorithmType.SEASONAL_DECOMPOSITION:
            return self._seasonal(readings, values, stats)
        return self._zscore(values, stats)

    def _ensemble_members(
        self,
        algorithm: AlgorithmType,
        readings: list[SensorReading],
        values: list[float],
        stats: StatisticalMetrics,
        primary: _Scoring,
    ) -> list[_Scoring]:
        if self.config.confidence_method is not ConfidenceMethod.ENSEMBLE:
            return []
        members = [primary]
        for partner in self.config.ensemble_algorithms:
            partner = AlgorithmType(partner)
            if partner is algorithm:
                continue
            members.append(self._score(partner, readings, values, stats))
        return members

    # ------------------------------------------------------------------
    # Algorithms
    # ------------------------------------------------------------------

    def _zscore(self, values: list[float], stats: StatisticalMetrics) -> _Scoring:
        threshold = self.config.threshold_multiplier
        std = stats.std_deviation
        points: list[_PointScore | None] = []
        for value in values:
            if std <= 0:
                points.append(None)
                continue
            deviation = abs(value - stats.mean)
            score = deviation / std
            points.append(_PointScore(score, stats.mean, deviation, score > threshold))
        return _Scoring(AlgorithmType.STATISTICAL_ZSCORE, points, stats, threshold)

    def _modified_zscore(self, values: list[float], stats: StatisticalMetrics) -> _Scoring:
        threshold = self.config.threshold_multiplier
        center = median(values)
        mad = median_absolute_deviation(values, center)
        points: list[_PointScore | None] = []
        for value in values:
            if mad <= 0:
                points.append(None)
                continue
            deviation = abs(value - center)
            score = MODIFIED_ZSCORE_CONSTANT * deviation / mad
            points.append(_PointScore(score, center, deviation, score > threshold))
        return _Scoring(AlgorithmType.MODIFIED_ZSCORE, points, stats, threshold)

    def _iqr(self, values: list[float], stats: StatisticalMetrics) -> _Scoring:
        ordered = sorted(values)
        q1 = percentile(ordered, 25)
        q3 = percentile(ordered, 75)
        spread = q3 - q1
        fence = IQR_FENCE_FACTOR * spread * self.config.sensitivity / 5
        lower, upper = q1 - fence, q3 + fence
        midpoint = (q1 + q3) / 2

        points: list[_PointScore | None] = []
        for value in values:
            if spread <= 0:
                points.append(None)
            elif lower <= value <= upper:
                points.append(_PointScore(0.0, midpoint, 0.0, False))
            else:
                deviation = min(abs(value - lower), abs(value - upper))
                points.append(_PointScore(deviation / spread, midpoint, deviation, True))
        return _Scoring(AlgorithmType.INTERQUARTILE_RANGE, points, stats, IQR_FENCE_FACTOR)

    def _moving_average(self, values: list[float], stats: StatisticalMetrics) -> _Scoring:
        threshold = self.config.threshold_multiplier
        size = min(MAX_MOVING_WINDOW, len(values) // 5)
        points: list[_PointScore | None] = [None] * len(values)
        if size >= 2:
            for i in range(size, len(values)):
                trailing = RunningStats(values[i - size : i])
                std = trailing.population_variance**0.5
                if std <= 0:
                    continue
                deviation = abs(values[i] - trailing.mean)
                score = deviation / std
                points[i] = _PointScore(score, trailing.mean, deviation, score > threshold)
        return _Scoring(AlgorithmType.MOVING_AVERAGE, points, stats, threshold)

    def _seasonal(self, readings: list[SensorReading], values: list[float], stats: StatisticalMetrics) -> _Scoring:
        if not self.config.seasonal_adjustment or len(values) < MIN_POINTS_FOR_SEASONALITY:
            return self._zscore(values, stats)

        hours = [self.catalog.local_hour(r.timestamp) for r in readings]
        curve = self.catalog.daily_curve(readings[0].equipment_type)
        if curve:
            level = sum(curve) / len(curve)
            adjusted = [v / curve[h] * level for v, h in zip(values, hours)]
        else:
            profile = self._hourly_profile(values, hours)
            level = sum(profile.values()) / len(profile)
            adjusted = [v - profile[h] + level for v, h in zip(values, hours)]

        adjusted_stats = compute_metrics(adjusted, include_seasonality=self.config.seasonal_adjustment)
        scored = self._zscore(adjusted, adjusted_stats)

        # Report expected values on the original scale.
        points: list[_PointScore | None] = []
        for point, value, hour in zip(scored.points, values, hours):
            if point is None:
                points.append(None)
                continue
            if curve:
                expected = adjusted_stats.mean * curve[hour] / level
            else:
                expected = adjusted_stats.mean + profile[hour] - level
            points.append(_PointScore(point.score, expected, abs(value - expected), point.flagged))
        return _Scoring(AlgorithmType.SEASONAL_DECOMPOSITION, points, adjusted_stats, scored.severity_baseline)

    @staticmethod
    def _hourly_profile(values: list[float], hours: list[int]) -> dict[int, float]:
        sums: dict[int, float] = defaultdict(float)
        counts: dict[int, int] = defaultdict(int)
        for value, hour in zip(values, hours):
            sums[hour] += value
            counts[hour] += 1
        return {hour: sums[hour] / counts[hour] for hour in sums}

    # ------------------------------------------------------------------
    # Scoring helpers
    # ------------------------------------------------------------------

    def _confidence(self, index: int, primary: _Scoring, members: list[_Scoring]) -> int:
        threshold = self.config.threshold_multiplier
        point = primary.points[index]
        method = self.config.confidence_method

        if method is ConfidenceMethod.ENSEMBLE and len(members) > 1:
            scores = []
            for member in members:
                member_point = member.points[index]
                if member_point is None:
                    continue
                base = min(95.0, member_point.score / threshold * 40 + 50)
                scores.append(base * _METHOD_CONFIDENCE_FACTORS.get(member.algorithm, 1.0))
            confidence = sum(scores) / len(scores)
        else:
            if method is ConfidenceMethod.ENSEMBLE:
                stats = primary.stats
                confidence = min(
                    95.0,
                    point.score / threshold * 30
                    + (100 - stats.normality_test) * 0.3
                    + min(20.0, stats.percentile_rank / 5)
                    + 20,
                )
            elif method is ConfidenceMethod.HISTORICAL:
                confidence = min(90.0, point.score * 25)
            else:
                confidence = min(95.0, point.score / threshold * 40 + 50)
            confidence *= _METHOD_CONFIDENCE_FACTORS.get(primary.algorithm, 1.0)

        return int(max(0, min(100, round(confidence))))

    @staticmethod
    def severity_for(score: float, baseline: float) -> PatternSeverity:
        ratio = score / baseline
        if ratio > 2.0:
            return PatternSeverity.CRITICAL
        if ratio > 1.0:
            return PatternSeverity.WARNING
        return PatternSeverity.INFO

    def _pattern_type(self, algorithm: AlgorithmType, score: float, stats: StatisticalMetrics) -> PatternType:
        if algorithm is AlgorithmType.MOVING_AVERAGE:
            return PatternType.TREND
        if stats.seasonality_strength and stats.seasonality_strength > 0.7:
            return PatternType.SEASONAL
        if score > self.config.threshold_multiplier * 1.5:
            return PatternType.ANOMALY
        if stats.normality_test < 70:
            return PatternType.TREND
        return PatternType.THRESHOLD

    def _build_pattern(
        self,
        sensor_id: str,
        reading: SensorReading,
        point: _PointScore,
        scoring: _Scoring,
        confidence: int,
        members: list[_Scoring],
        window: AnalysisWindow,
    ) -> DetectedPattern:
        severity = self.severity_for(point.score, scoring.severity_baseline)
        equipment = reading.equipment_type
        timestamp = to_iso(reading.timestamp)
        metadata = {
            "detection_algorithm": scoring.algorithm.value,
            "analysis_window": self.config.lookback_period.value,
            "granularity": window.granularity.value,
            "threshold_used": self.config.threshold_multiplier,
            "climate_adjusted_threshold": round(
                self.catalog.adjusted_threshold(self.config.threshold_multiplier, equipment), 3
            ),
            "confidence_method": self.config.confidence_method.value,
            "outlier_handling": self.config.outlier_handling.value,
            "during_business_hours": self.catalog.is_business_hours(reading.timestamp),
            "statistical_metrics": scoring.stats.to_dict(),
        }
        if len(members) > 1:
            metadata["ensemble_algorithms"] = [m.algorithm.value for m in members]

        return DetectedPattern(
            id=self.id_generator.new_id("pattern"),
            timestamp=timestamp,
            sensor_id=sensor_id,
            equipment_type=equipment,
            floor_number=self.catalog.floor_number(sensor_id),
            pattern_type=self._pattern_type(scoring.algorithm, point.score, scoring.stats),
            severity=severity,
            confidence_score=confidence,
            description=(
                f"{severity.value.upper()} anomaly detected in {equipment} equipment. "
                f"Value {round(reading.value, 2)} deviates by {round(point.deviation, 2)} "
                f"from expected {round(point.expected, 2)}. "
                f"Statistical significance: {round(point.score, 2)} standard deviations."
            ),
            data_points=(
                PatternDataPoint(
                    timestamp=timestamp,
                    value=reading.value,
                    expected_value=point.expected,
                    deviation=point.deviation,
                    is_anomaly=True,
                    severity_score=point.score,
                ),
            ),
            created_at=to_iso(self.clock()),
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    def _validate_config(self) -> str | None:
        cfg = self.config
        if not 1 <= cfg.sensitivity <= 10:
            return f"Invalid detection configuration: sensitivity must be 1-10, got {cfg.sensitivity}"
        if not 1 <= cfg.threshold_multiplier <= 5:
            return (
                "Invalid detection configuration: threshold_multiplier must be 1-5, "
                f"got {cfg.threshold_multiplier}"
            )
        if cfg.minimum_data_points < 1:
            return "Invalid detection configuration: minimum_data_points must be positive"
        for partner in cfg.ensemble_algorithms:
            try:
                AlgorithmType(partner)
            except ValueError:
                return f"Unsupported algorithm type: {partner}"
        return None

    @staticmethod
    def _group_by_sensor(readings: Sequence[SensorReading]) -> dict[str, list[SensorReading]]:
        groups: dict[str, list[SensorReading]] = defaultdict(list)
        for reading in readings:
            groups[reading.sensor_id].append(reading)
        return dict(groups)

    @staticmethod
    def _confidence_distribution(patterns: list[DetectedPattern]) -> dict[str, int]:
        buckets = {"high": 0, "medium": 0, "low": 0}
        for pattern in patterns:
            if pattern.confidence_score >= 80:
                buckets["high"] += 1
            elif pattern.confidence_score >= 60:
                buckets["medium"] += 1
            else:
                buckets["low"] += 1
        return buckets

    @staticmethod
    def estimate_memory_mb(points: int) -> float:
        """Rough footprint: ~100 bytes per reading plus fixed overhead."""
        return round((points * 100 + 50_000) / (1024 * 1024), 4)

    def _failure(self, error: str, total: int, started: float) -> DetectionResult:
        logger.warning("Anomaly detection rejected input: %s", error)
        return DetectionResult(
            success=False,
            patterns=(),
            statistical_summary=StatisticalSummary(
                total_points_analyzed=total,
                anomalies_detected=0,
                confidence_distribution={},
                processing_time_ms=round((time.perf_counter() - started) * 1000, 3),
            ),
            performance_metrics=PerformanceMetrics(
                algorithm_efficiency=0.0,
                memory_usage_mb=self.estimate_memory_mb(total),
                throughput_points_per_second=0.0,
                parallel_workers=0,
            ),
            error=error,
        )

