import json
from datetime import datetime, timezone

import pytest

from cubems.domain.exceptions import ConfigurationError
from cubems.enums import ExpertiseLevel
from cubems.services.analytics.catalog import DEFAULT_CATALOG_PATH, load_catalog


def test_default_catalog_loads(catalog):
    assert catalog.building.floor_count == 7
    assert {a.id for a in catalog.maintenance_actions} >= {"hvac_calibration", "generic_monitoring"}
    assert set(catalog.daily_curves) == {"HVAC", "Lighting", "Power", "Water", "Security"}


@pytest.mark.parametrize(
    "sensor_id, floor",
    [("HVAC-01", 2), ("AC-13", 7), ("light_7", 1), ("lobby-sensor", 1)],
)
def test_floor_number_from_sensor_id(catalog, sensor_id, floor):
    assert catalog.floor_number(sensor_id) == floor


def test_business_hours_use_building_offset(catalog):
    # UTC+7: 03:00 UTC is 10:00 local, 12:00 UTC is 19:00 local
    morning = datetime(2024, 6, 3, 3, 0, tzinfo=timezone.utc)
    evening = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)

    assert catalog.local_hour(morning) == 10
    assert catalog.is_business_hours(morning) is True
    assert catalog.is_business_hours(evening) is False


def test_adjusted_threshold_widens_for_climate_and_season(catalog):
    assert catalog.adjusted_threshold(2.5, "HVAC") == pytest.approx(2.5 * 1.2 * 1.15)
    # unknown equipment falls back to the HVAC baseline
    assert catalog.adjusted_threshold(2.5, "Elevator") == pytest.approx(2.5 * 1.2 * 1.15)


def test_performance_sla_scales_with_sensor_count(catalog):
    assert catalog.performance_sla_ms(50) == 3000
    assert catalog.performance_sla_ms(1) == 60


def test_generic_action_applies_to_everything(catalog):
    generic = next(a for a in catalog.maintenance_actions if a.id == "generic_monitoring")
    calibration = next(a for a in catalog.maintenance_actions if a.id == "hvac_calibration")

    assert generic.applies_to("Water", "frequency")
    assert calibration.applies_to("HVAC", "threshold")
    assert not calibration.applies_to("Lighting", "threshold")
    assert not calibration.applies_to("HVAC", "seasonal")


def test_adjustment_rule_conditions(catalog):
    rules = {rule.name: rule for rule in catalog.adjustment_rules}

    assert rules["tropical_climate"].matches("HVAC", 1, ExpertiseLevel.BASIC)
    assert not rules["tropical_climate"].matches("Power", 1, ExpertiseLevel.BASIC)
    assert rules["high_floor_access"].matches("Water", 6, ExpertiseLevel.BASIC)
    assert not rules["high_floor_access"].matches("Water", 5, ExpertiseLevel.BASIC)
    assert not rules["specialist_availability"].matches("HVAC", 1, ExpertiseLevel.ENGINEER)


def test_missing_catalog_raises_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_catalog(tmp_path / "missing.json")


def test_malformed_catalog_raises_configuration_error(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="not valid JSON"):
        load_catalog(path)


def test_short_daily_curve_is_rejected(tmp_path):
    raw = json.loads(DEFAULT_CATALOG_PATH.read_text(encoding="utf-8"))
    raw["daily_curves"]["HVAC"] = [1.0] * 12
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(raw), encoding="utf-8")

    with pytest.raises(ConfigurationError, match="invalid"):
        load_catalog(path)
