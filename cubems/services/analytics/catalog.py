"""
Maintenance Catalog
===================

Loads the building/equipment configuration document that drives detection
and recommendation scoring: maintenance actions, cost-benefit tables,
adjustment rules, equipment baselines and daily load curves.

The document is validated with pydantic once at load time; engines receive
an immutable :class:`MaintenanceCatalog` and never read the file again.
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from cubems.domain.exceptions import ConfigurationError
from cubems.enums import ActionType, ExpertiseLevel

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent.parent / "data" / "maintenance_catalog.json"

ANY_EQUIPMENT = "all"
ANY_PATTERN = "any"

_SENSOR_NUMBER = re.compile(r"(\d+)")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class HourRange(_Frozen):
    start: int = Field(..., ge=0, le=23)
    end: int = Field(..., ge=0, le=23)


class BuildingProfile(_Frozen):
    name: str = ""
    floor_count: int = Field(7, ge=1)
    sensor_count: int = Field(0, ge=0)
    business_hours: HourRange = HourRange(start=8, end=18)
    maintenance_window: HourRange = HourRange(start=19, end=6)
    tropical_adjustment: float = Field(1.0, gt=0)
    humidity_factor: float = Field(1.0, gt=0)
    utc_offset_hours: float = Field(0.0, ge=-12, le=14)


class PerformanceProfile(_Frozen):
    target_processing_time_ms: int = Field(3000, gt=0)
    reference_sensor_count: int = Field(50, gt=0)
    alert_on_sla_breach: bool = True


class ValueRange(_Frozen):
    min: float
    max: float


class CriticalThresholds(_Frozen):
    absolute_min: float
    absolute_max: float


class EquipmentBaseline(_Frozen):
    normal_range: ValueRange
    optimal_range: ValueRange
    critical_thresholds: CriticalThresholds
    seasonal_variance: float = Field(0.0, ge=0, le=1)


class MaintenanceAction(_Frozen):
    """One row of the maintenance action table."""

    id: str
    equipment_type: str
    pattern_types: tuple[str, ...]
    action_type: ActionType
    description: str
    base_cost: float = Field(..., ge=0)
    base_time_hours: float = Field(..., ge=0)
    required_expertise: ExpertiseLevel
    effectiveness_score: float = Field(..., ge=0, le=100)
    urgency_multiplier: float = Field(..., ge=0)
    prevention_factor: float | None = Field(None, ge=0, le=1)

    def applies_to(self, equipment_type: str, pattern_type: str) -> bool:
        if self.equipment_type not in (ANY_EQUIPMENT, equipment_type):
            return False
        return ANY_PATTERN in self.pattern_types or pattern_type in self.pattern_types


class CostBenefitConfig(_Frozen):
    severity_cost_multipliers: dict[str, float]
    equipment_cost_multipliers: dict[str, float]
    failure_cost_multipliers: dict[str, float]
    downtime_cost_per_hour: dict[str, float]
    prevented_downtime_hours: dict[str, float]
    labor_rates: dict[ExpertiseLevel, float]
    equipment_replacement_costs: dict[str, float] = Field(default_factory=dict)
    reliability_factors: dict[str, float] = Field(default_factory=dict)
    base_failure_cost: float = 1000
    default_prevention_factor: float = 0.7
    default_downtime_cost_per_hour: float = 100
    high_criticality_cost_premium: float = 1.2
    high_criticality_savings_multiplier: float = 1.5


class AdjustmentRule(_Frozen):
    """Deployment heuristic applied to every recommendation of a pattern.

    All conditions that are set must hold; effects are then applied in the
    order description, savings, time, cost.
    """

    name: str
    equipment_types: tuple[str, ...] | None = None
    min_floor: int | None = None
    required_expertise: tuple[ExpertiseLevel, ...] | None = None
    description_suffix: str = ""
    savings_multiplier: float = 1.0
    time_multiplier: float = 1.0
    cost_addition: float = 0.0

    def matches(self, equipment_type: str, floor_number: int, expertise: ExpertiseLevel) -> bool:
        if self.equipment_types is not None and equipment_type not in self.equipment_types:
            return False
        if self.min_floor is not None and floor_number < self.min_floor:
            return False
        if self.required_expertise is not None and expertise not in self.required_expertise:
            return False
        return True


class MaintenanceCatalog(_Frozen):
    version: int = 1
    building: BuildingProfile = BuildingProfile()
    performance: PerformanceProfile = PerformanceProfile()
    equipment_baselines: dict[str, EquipmentBaseline] = Field(default_factory=dict)
    daily_curves: dict[str, tuple[float, ...]] = Field(default_factory=dict)
    maintenance_actions: tuple[MaintenanceAction, ...]
    cost_benefit: CostBenefitConfig
    adjustment_rules: tuple[AdjustmentRule, ...] = ()

    @field_validator("daily_curves")
    @classmethod
    def _curves_cover_a_day(cls, curves: dict[str, tuple[float, ...]]) -> dict[str, tuple[float, ...]]:
        for equipment, curve in curves.items():
            if len(curve) != 24:
                raise ValueError(f"daily curve for {equipment} must have 24 hourly values")
            if any(v <= 0 for v in curve):
                raise ValueError(f"daily curve for {equipment} must be strictly positive")
        return curves

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    def floor_number(self, sensor_id: str) -> int:
        """Floor derived from the first integer in the sensor id (1-based)."""
        match = _SENSOR_NUMBER.search(sensor_id)
        if not match:
            return 1
        return int(match.group(1)) % self.building.floor_count + 1

    def daily_curve(self, equipment_type: str) -> tuple[float, ...] | None:
        return self.daily_curves.get(equipment_type)

    def local_hour(self, moment: datetime) -> int:
        """Hour of day at the building for an aware UTC timestamp."""
        return (moment + timedelta(hours=self.building.utc_offset_hours)).hour

    def is_business_hours(self, moment: datetime) -> bool:
        hours = self.building.business_hours
        return hours.start <= self.local_hour(moment) < hours.end

    def adjusted_threshold(self, base_threshold: float, equipment_type: str) -> float:
        """Threshold widened for tropical climate variance and the equipment's seasonal swing."""
        baseline = self.equipment_baselines.get(equipment_type) or self.equipment_baselines.get("HVAC")
        seasonal_variance = baseline.seasonal_variance if baseline else 0.0
        return base_threshold * self.building.tropical_adjustment * (1 + seasonal_variance)

    def performance_sla_ms(self, sensor_count: int) -> int:
        perf = self.performance
        per_sensor = perf.target_processing_time_ms / perf.reference_sensor_count
        return math.ceil(sensor_count * per_sensor)


def load_catalog(path: str | Path | None = None) -> MaintenanceCatalog:
    """Read and validate the catalog document.

    Raises:
        ConfigurationError: if the file is missing, not JSON, or fails validation.
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    try:
        with catalog_path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except FileNotFoundError:
        raise ConfigurationError(f"Maintenance catalog not found: {catalog_path}") from None
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Maintenance catalog {catalog_path} is not valid JSON: {exc}") from exc

    try:
        catalog = MaintenanceCatalog.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Maintenance catalog {catalog_path} is invalid: {exc}") from exc

    logger.info(
        "Loaded maintenance catalog %s (%s actions, %s rules)",
        catalog_path,
        len(catalog.maintenance_actions),
        len(catalog.adjustment_rules),
    )
    return catalog
