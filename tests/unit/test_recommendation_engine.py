from dataclasses import replace
from datetime import timedelta

import pytest

from cubems.enums import (
    ActionType,
    ExpertiseLevel,
    MaintenanceCategory,
    OperationalCriticality,
    PatternSeverity,
    PatternType,
    RecommendationPriority,
)
from cubems.services.analytics.recommendation_engine import (
    RecommendationContext,
    RecommendationEngine,
    payback_period,
    roi_percent,
)
from cubems.utils.ids import SequentialIdGenerator
from cubems.utils.time import frozen_clock, to_iso


@pytest.fixture()
def engine(catalog, now):
    return RecommendationEngine(catalog, id_generator=SequentialIdGenerator(), clock=frozen_clock(now))


@pytest.fixture()
def site_context():
    return RecommendationContext(
        operational_criticality=OperationalCriticality.HIGH,
        available_expertise=(ExpertiseLevel.BASIC, ExpertiseLevel.TECHNICIAN, ExpertiseLevel.ENGINEER),
    )


def _action(catalog, action_id):
    return next(a for a in catalog.maintenance_actions if a.id == action_id)


def test_critical_hvac_anomaly_recommendations(engine, make_pattern, site_context, now):
    pattern = make_pattern()

    [result] = engine.generate_recommendations([pattern], site_context)

    recs = result.recommendations
    assert len(recs) == 5
    # high priority first, then by success probability
    assert [r.priority for r in recs] == [RecommendationPriority.HIGH] * 4 + [RecommendationPriority.MEDIUM]
    assert [r.success_probability for r in recs[:4]] == sorted((r.success_probability for r in recs[:4]), reverse=True)

    calibration = recs[0]
    assert calibration.id == "rec_hvac_calibration_000001"
    assert calibration.action_type is ActionType.CALIBRATION
    assert calibration.estimated_cost == 612
    assert calibration.estimated_savings == 12744
    assert calibration.time_to_implement_hours == 3.0
    assert calibration.success_probability == 87
    assert calibration.maintenance_category is MaintenanceCategory.EMERGENCY
    assert calibration.urgency_deadline == to_iso(now + timedelta(hours=8))
    assert calibration.description.startswith("Calibrate HVAC sensors and control systems on floor 2")
    assert "High-confidence detection" in calibration.description
    assert "Critical operational equipment" in calibration.description
    assert calibration.description.endswith("Consider Bangkok tropical climate impact on HVAC performance.")


def test_generation_does_not_mutate_input(engine, make_pattern, site_context):
    pattern = make_pattern()
    engine.generate_recommendations([pattern], site_context)
    assert pattern.recommendations == ()


def test_generation_is_repeatable_apart_from_ids(engine, make_pattern, site_context):
    patterns = [
        make_pattern(),
        make_pattern(
            "pattern_000002",
            sensor_id="LGT-07",
            equipment_type="Lighting",
            floor_number=7,
            pattern_type=PatternType.SEASONAL,
            severity=PatternSeverity.WARNING,
            confidence_score=72,
        ),
    ]

    first = engine.generate_recommendations(patterns, site_context)
    second = engine.generate_recommendations(patterns, site_context)

    def without_ids(results):
        return [[replace(rec, id="") for rec in result.recommendations] for result in results]

    assert [r.id for r in first] == [r.id for r in second]
    assert without_ids(first) == without_ids(second)
    assert {rec.id for r in first for rec in r.recommendations}.isdisjoint(
        rec.id for r in second for rec in r.recommendations
    )


def test_custom_recommendations_for_confident_critical_pattern(engine, make_pattern, site_context, now):
    [result] = engine.generate_recommendations([make_pattern()], site_context)
    by_prefix = {r.id.rsplit("_", 1)[0]: r for r in result.recommendations}

    emergency = by_prefix["custom_emergency"]
    assert emergency.estimated_savings == 6000  # tropical climate uplift on 5000
    assert emergency.urgency_deadline == to_iso(now + timedelta(hours=4))
    monitor = by_prefix["custom_monitor"]
    assert monitor.priority is RecommendationPriority.MEDIUM
    assert monitor.success_probability == 90


def test_seasonal_pattern_gets_seasonal_custom_action(engine, make_pattern, site_context):
    pattern = make_pattern(
        pattern_type=PatternType.SEASONAL, severity=PatternSeverity.WARNING, confidence_score=75
    )
    [result] = engine.generate_recommendations([pattern], site_context)

    ids = [r.id for r in result.recommendations]
    assert any(i.startswith("custom_seasonal") for i in ids)
    assert any(i.startswith("rec_hvac_cleaning") for i in ids)
    assert not any(i.startswith("custom_emergency") for i in ids)
    assert all(r.maintenance_category is not MaintenanceCategory.EMERGENCY for r in result.recommendations)


def test_high_floor_rule_adds_access_time_and_cost(engine, make_pattern):
    low = make_pattern(equipment_type="Water", sensor_id="WTR-01", floor_number=2, confidence_score=75,
                       severity=PatternSeverity.INFO)
    high = make_pattern(equipment_type="Water", sensor_id="WTR-06", floor_number=6, confidence_score=75,
                        severity=PatternSeverity.INFO)

    [low_result] = engine.generate_recommendations([low])
    [high_result] = engine.generate_recommendations([high])

    low_rec = low_result.recommendations[0]
    high_rec = high_result.recommendations[0]
    assert high_rec.estimated_cost == low_rec.estimated_cost + 50
    assert high_rec.time_to_implement_hours == round((low_rec.time_to_implement_hours + 0.5) * 1.1, 1)


def test_low_viability_actions_are_discarded(engine, catalog, make_pattern):
    pattern = make_pattern(equipment_type="Power", sensor_id="PWR-01", confidence_score=0,
                           severity=PatternSeverity.INFO)
    context = RecommendationContext()

    assert engine.success_probability(pattern, _action(catalog, "generic_monitoring"), context) is None
    assert engine.success_probability(pattern, _action(catalog, "power_monitoring"), context) == 38


def test_success_probability_is_capped(engine, catalog, make_pattern, site_context):
    pattern = make_pattern(equipment_type="Lighting", sensor_id="LGT-01", confidence_score=100)
    assert engine.success_probability(pattern, _action(catalog, "lighting_replacement"), site_context) == 95


def test_priority_bands(engine, catalog, make_pattern):
    action = _action(catalog, "generic_monitoring")
    low_ctx = RecommendationContext(operational_criticality=OperationalCriticality.LOW)
    info = make_pattern(severity=PatternSeverity.INFO, confidence_score=10)

    # 10 + 3 + 6 + 2
    assert engine.priority_score(info, action, low_ctx) == pytest.approx(21)
    assert engine.priority(info, action, low_ctx) is RecommendationPriority.LOW
    assert engine.priority(make_pattern(), action, low_ctx) is RecommendationPriority.HIGH


def test_implementation_time_adjustments(catalog, make_pattern):
    action = _action(catalog, "hvac_calibration")
    unsure_high_floor = make_pattern(confidence_score=60, floor_number=5)

    assert RecommendationEngine.implementation_time(unsure_high_floor, action) == round(3 * 1.3 + 0.5, 1)


def test_roi_helpers():
    assert roi_percent(1500, 1000) == pytest.approx(50.0)
    assert roi_percent(100, 0) == 0.0
    assert payback_period(2000, 500) == pytest.approx(0.25)
    assert payback_period(0, 500) is None
