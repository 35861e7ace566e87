from dataclasses import replace
from datetime import timedelta

import pytest

from cubems.domain.patterns import AnalysisWindow, AnomalyDetectionConfig, SensorReading
from cubems.enums import AlgorithmType, ConfidenceMethod, PatternSeverity, PatternType
from cubems.services.analytics.anomaly_detector import StatisticalAnomalyDetector
from cubems.utils.ids import SequentialIdGenerator
from cubems.utils.time import frozen_clock, to_iso


@pytest.fixture()
def window(now):
    return AnalysisWindow(start=now - timedelta(days=1), end=now)


@pytest.fixture()
def make_detector(catalog, now):
    def _make(**config) -> StatisticalAnomalyDetector:
        return StatisticalAnomalyDetector(
            AnomalyDetectionConfig(**config),
            catalog=catalog,
            id_generator=SequentialIdGenerator(),
            clock=frozen_clock(now),
            max_workers=1,
        )

    return _make


def test_zscore_flags_the_single_spike(make_detector, spike_readings, now, window):
    readings = spike_readings("HVAC-01", now)
    result = make_detector().detect_anomalies(readings, window)

    assert result.success is True
    assert len(result.patterns) == 1
    pattern = result.patterns[0]
    assert pattern.id == "pattern_000001"
    assert pattern.sensor_id == "HVAC-01"
    assert pattern.floor_number == 2
    assert pattern.severity is PatternSeverity.CRITICAL
    assert pattern.pattern_type is PatternType.ANOMALY
    assert pattern.confidence_score == 95
    assert pattern.timestamp == to_iso(readings[35].timestamp)
    assert pattern.created_at == to_iso(now)

    point = pattern.data_points[0]
    assert point.value == 200.0
    assert point.is_anomaly is True
    assert point.severity_score > 6

    assert pattern.metadata["detection_algorithm"] == "statistical_zscore"
    assert pattern.metadata["climate_adjusted_threshold"] == pytest.approx(3.45)
    assert "ensemble_algorithms" not in pattern.metadata


def test_summary_and_sensor_statistics(make_detector, spike_readings, now, window):
    result = make_detector().detect_anomalies(spike_readings("HVAC-01", now), window)

    summary = result.statistical_summary
    assert summary.total_points_analyzed == 40
    assert summary.anomalies_detected == 1
    assert summary.confidence_distribution == {"high": 1, "medium": 0, "low": 0}
    assert summary.sensors_analyzed == 1
    assert set(result.sensor_statistics) == {"HVAC-01"}
    assert result.statistics.mean == pytest.approx(102.475)


def test_flat_series_yields_no_patterns(make_detector, spike_readings, now, window):
    result = make_detector().detect_anomalies(spike_readings("HVAC-01", now, spike_value=None), window)

    assert result.success is True
    assert result.patterns == ()


def test_no_readings_is_reported_not_raised(make_detector, window):
    result = make_detector().detect_anomalies([], window)

    assert result.success is False
    assert result.error == "No data points provided"


def test_insufficient_points(make_detector, spike_readings, now, window):
    result = make_detector(minimum_data_points=20).detect_anomalies(spike_readings("HVAC-01", now, count=5), window)

    assert result.success is False
    assert result.error == "Insufficient data points. Required: 20, provided: 5"


def test_unknown_algorithm(make_detector, spike_readings, now, window):
    result = make_detector(algorithm_type="fourier").detect_anomalies(spike_readings("HVAC-01", now), window)

    assert result.success is False
    assert result.error == "Unsupported algorithm type: fourier"


def test_out_of_range_sensitivity(make_detector, spike_readings, now, window):
    result = make_detector(sensitivity=11).detect_anomalies(spike_readings("HVAC-01", now), window)

    assert result.success is False
    assert "sensitivity must be 1-10" in result.error


def test_sparse_sensor_is_skipped_not_failed(make_detector, spike_readings, now, window):
    readings = spike_readings("HVAC-01", now) + spike_readings("HVAC-02", now, count=5, spike_value=None)
    result = make_detector(minimum_data_points=20).detect_anomalies(readings, window)

    assert result.success is True
    assert result.statistical_summary.sensors_analyzed == 1
    assert result.statistical_summary.sensors_skipped == 1
    assert {p.sensor_id for p in result.patterns} == {"HVAC-01"}


@pytest.mark.parametrize(
    "algorithm",
    [AlgorithmType.MODIFIED_ZSCORE, AlgorithmType.INTERQUARTILE_RANGE],
)
def test_robust_algorithms_flag_the_spike(make_detector, spike_readings, now, window, algorithm):
    readings = spike_readings("HVAC-01", now)
    result = make_detector(algorithm_type=algorithm).detect_anomalies(readings, window)

    assert result.success is True
    assert [p.timestamp for p in result.patterns] == [to_iso(readings[35].timestamp)]
    assert result.patterns[0].metadata["detection_algorithm"] == algorithm.value


def test_moving_average_reports_trend(make_detector, spike_readings, now, window):
    result = make_detector(algorithm_type=AlgorithmType.MOVING_AVERAGE).detect_anomalies(
        spike_readings("HVAC-01", now), window
    )

    assert len(result.patterns) == 1
    assert result.patterns[0].pattern_type is PatternType.TREND
    assert result.patterns[0].confidence_score == 90


def test_ensemble_confidence_combines_members(make_detector, spike_readings, now, window):
    detector = make_detector(
        confidence_method=ConfidenceMethod.ENSEMBLE,
        ensemble_algorithms=(AlgorithmType.MODIFIED_ZSCORE, AlgorithmType.INTERQUARTILE_RANGE),
    )
    result = detector.detect_anomalies(spike_readings("HVAC-01", now), window)

    pattern = result.patterns[0]
    assert pattern.confidence_score == 95
    assert pattern.metadata["ensemble_algorithms"] == [
        "statistical_zscore",
        "modified_zscore",
        "interquartile_range",
    ]


def test_trailing_window_scorer_can_join_the_ensemble(make_detector, spike_readings, now, window):
    detector = make_detector(
        confidence_method=ConfidenceMethod.ENSEMBLE,
        ensemble_algorithms=(AlgorithmType.MOVING_AVERAGE,),
    )
    result = detector.detect_anomalies(spike_readings("HVAC-01", now), window)

    assert result.success is True
    [pattern] = result.patterns
    # zscore member 95, moving-average member 95 * 0.95
    assert pattern.confidence_score == 93
    assert pattern.metadata["ensemble_algorithms"] == ["statistical_zscore", "moving_average"]


def test_seasonal_decomposition_catches_off_peak_spike(make_detector, catalog, now, window):
    start = now - timedelta(hours=72)
    curve = catalog.daily_curve("HVAC")
    readings = []
    for i in range(72):
        ts = start + timedelta(hours=i)
        readings.append(SensorReading(ts, "HVAC-01", "HVAC", 1000 * curve[catalog.local_hour(ts)]))
    # double the load at 02:00 local, still well inside the daytime range
    spike_index = next(i for i, r in enumerate(readings) if catalog.local_hour(r.timestamp) == 2)
    readings[spike_index] = replace(readings[spike_index], value=readings[spike_index].value * 2)

    plain = make_detector().detect_anomalies(readings, window)
    seasonal = make_detector(algorithm_type=AlgorithmType.SEASONAL_DECOMPOSITION).detect_anomalies(
        readings, window
    )

    assert plain.patterns == ()
    assert len(seasonal.patterns) == 1
    pattern = seasonal.patterns[0]
    assert pattern.timestamp == to_iso(readings[spike_index].timestamp)
    assert pattern.data_points[0].expected_value == pytest.approx(500, rel=0.05)
    assert pattern.metadata["detection_algorithm"] == "seasonal_decomposition"


def test_parallel_analysis_keeps_sensor_order(catalog, spike_readings, now, window):
    detector = StatisticalAnomalyDetector(
        AnomalyDetectionConfig(),
        catalog=catalog,
        id_generator=SequentialIdGenerator(),
        clock=frozen_clock(now),
        max_workers=3,
    )
    readings = spike_readings("HVAC-03", now) + spike_readings("HVAC-01", now) + spike_readings("HVAC-02", now)

    result = detector.detect_anomalies(readings, window)

    assert [p.sensor_id for p in result.patterns] == ["HVAC-01", "HVAC-02", "HVAC-03"]
    assert result.performance_metrics.parallel_workers == 3


def test_severity_bands():
    assert StatisticalAnomalyDetector.severity_for(6.0, 2.5) is PatternSeverity.CRITICAL
    assert StatisticalAnomalyDetector.severity_for(3.0, 2.5) is PatternSeverity.WARNING
    assert StatisticalAnomalyDetector.severity_for(2.5, 2.5) is PatternSeverity.INFO
