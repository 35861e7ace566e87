"""
Maintenance Recommendation Engine
=================================

Turns detected patterns into prioritized, cost/benefit-scored maintenance
recommendations. All tables (actions, cost multipliers, adjustment rules)
come from the :class:`MaintenanceCatalog`; the engine performs no I/O.

Given the same patterns, context and clock the engine produces the same
cost, savings, priority and success figures. Only ids vary, and those come
from the injected id generator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Sequence

from cubems.domain.patterns import DetectedPattern, PatternRecommendation
from cubems.enums import (
    ActionType,
    ExpertiseLevel,
    MaintenanceCategory,
    OperationalCriticality,
    PatternSeverity,
    PatternType,
    RecommendationPriority,
)
from cubems.services.analytics.catalog import MaintenanceAction, MaintenanceCatalog, load_catalog
from cubems.services.protocols import IdGenerator
from cubems.utils.ids import UuidIdGenerator
from cubems.utils.time import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)

MIN_SUCCESS_PROBABILITY = 30
MAX_SUCCESS_PROBABILITY = 95

_SEVERITY_PRIORITY_POINTS = {
    PatternSeverity.CRITICAL: 40,
    PatternSeverity.WARNING: 25,
    PatternSeverity.INFO: 10,
}
_CRITICALITY_PRIORITY_POINTS = {
    OperationalCriticality.HIGH: 10,
    OperationalCriticality.MEDIUM: 5,
    OperationalCriticality.LOW: 2,
}


@dataclass(frozen=True)
class RecommendationContext:
    """Operational context the engine scores recommendations against."""

    operational_criticality: OperationalCriticality = OperationalCriticality.MEDIUM
    available_expertise: tuple[ExpertiseLevel, ...] = ()
    equipment_age_months: int | None = None
    last_maintenance_date: str | None = None
    failure_history: int | None = None
    budget_constraints: float | None = None
    maintenance_window_hours: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "operational_criticality", OperationalCriticality(self.operational_criticality))
        object.__setattr__(
            self, "available_expertise", tuple(ExpertiseLevel(e) for e in self.available_expertise)
        )


def roi_percent(savings: float, cost: float) -> float:
    """Return on investment as a percentage; 0.0 when cost is zero."""
    if cost <= 0:
        return 0.0
    return (savings - cost) / cost * 100


def payback_period(savings: float, cost: float) -> float | None:
    """Cost-to-savings ratio; ``None`` when there are no savings."""
    if savings <= 0:
        return None
    return cost / savings


class RecommendationEngine:
    """Generate maintenance recommendations for detected patterns.

    Args:
        catalog: Maintenance action and cost-benefit tables.
        id_generator: Source of recommendation ids.
        clock: Source of "now" for urgency deadlines.
    """

    def __init__(
        self,
        catalog: MaintenanceCatalog | None = None,
        *,
        id_generator: IdGenerator | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.catalog = catalog or load_catalog()
        self.id_generator = id_generator or UuidIdGenerator()
        self.clock = clock

    def generate_recommendations(
        self,
        patterns: Sequence[DetectedPattern],
        context: RecommendationContext | None = None,
    ) -> list[DetectedPattern]:
        """Return copies of ``patterns`` with ``recommendations`` populated.

        Recommendations are ordered by priority (high first), then by
        success probability.
        """
        context = context or RecommendationContext()
        results = []
        for pattern in patterns:
            recommendations = self._pattern_recommendations(pattern, context)
            recommendations.sort(key=lambda r: (-r.priority.rank, -r.success_probability))
            results.append(pattern.with_recommendations(recommendations))
        return results

    def _pattern_recommendations(
        self, pattern: DetectedPattern, context: RecommendationContext
    ) -> list[PatternRecommendation]:
        recommendations: list[PatternRecommendation] = []
        for action in self.applicable_actions(pattern):
            recommendation = self._create_recommendation(pattern, action, context)
            if recommendation is not None:
                recommendations.append(recommendation)

        recommendations.extend(self._custom_recommendations(pattern))
        return [self._apply_adjustment_rules(rec, pattern) for rec in recommendations]

    def applicable_actions(self, pattern: DetectedPattern) -> list[MaintenanceAction]:
        return [
            action
            for action in self.catalog.maintenance_actions
            if action.applies_to(pattern.equipment_type, PatternType(pattern.pattern_type).value)
        ]

    def _create_recommendation(
        self,
        pattern: DetectedPattern,
        action: MaintenanceAction,
        context: RecommendationContext,
    ) -> PatternRecommendation | None:
        success = self.success_probability(pattern, action, context)
        if success is None:
            logger.debug("Discarding %s for %s: below viability threshold", action.id, pattern.id)
            return None

        return PatternRecommendation(
            id=self.id_generator.new_id(f"rec_{action.id}"),
            priority=self.priority(pattern, action, context),
            action_type=action.action_type,
            description=self.describe(pattern, action, context),
            estimated_cost=self.adjusted_cost(pattern, action, context),
            estimated_savings=self.estimated_savings(pattern, action, context),
            time_to_implement_hours=self.implementation_time(pattern, action),
            required_expertise=action.required_expertise,
            maintenance_category=self.maintenance_category(pattern, action),
            success_probability=success,
            urgency_deadline=self.urgency_deadline(pattern, action),
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def adjusted_cost(
        self, pattern: DetectedPattern, action: MaintenanceAction, context: RecommendationContext
    ) -> float:
        tables = self.catalog.cost_benefit
        cost = action.base_cost
        cost *= tables.severity_cost_multipliers.get(PatternSeverity(pattern.severity).value, 1.0)
        cost *= tables.equipment_cost_multipliers.get(pattern.equipment_type, 1.0)
        cost += tables.labor_rates.get(action.required_expertise, 0.0) * action.base_time_hours
        if context.operational_criticality is OperationalCriticality.HIGH:
            cost *= tables.high_criticality_cost_premium
        return round(cost)

    def estimated_savings(
        self, pattern: DetectedPattern, action: MaintenanceAction, context: RecommendationContext
    ) -> float:
        tables = self.catalog.cost_benefit
        failure_multiplier = tables.failure_cost_multipliers.get(pattern.equipment_type, 1.0)
        savings = failure_multiplier * tables.base_failure_cost * (pattern.confidence_score / 100)
        savings *= action.prevention_factor or tables.default_prevention_factor

        downtime_rate = tables.downtime_cost_per_hour.get(pattern.equipment_type, tables.default_downtime_cost_per_hour)
        savings += downtime_rate * tables.prevented_downtime_hours.get(PatternSeverity(pattern.severity).value, 0)

        if context.operational_criticality is OperationalCriticality.HIGH:
            savings *= tables.high_criticality_savings_multiplier
        return round(savings)

    @staticmethod
    def implementation_time(pattern: DetectedPattern, action: MaintenanceAction) -> float:
        hours = action.base_time_hours
        if pattern.confidence_score < 70:
            hours *= 1.3
        if pattern.floor_number >= 5:
            hours += 0.5
        if action.required_expertise is ExpertiseLevel.SPECIALIST:
            hours += 2
        return round(hours, 1)

    @staticmethod
    def priority_score(pattern: DetectedPattern, action: MaintenanceAction, context: RecommendationContext) -> float:
        """Weighted score: 40 severity, 30 confidence, 20 action urgency, 10 criticality."""
        score = _SEVERITY_PRIORITY_POINTS[PatternSeverity(pattern.severity)]
        score += pattern.confidence_score / 100 * 30
        score += action.urgency_multiplier * 20
        score += _CRITICALITY_PRIORITY_POINTS[context.operational_criticality]
        return score

    def priority(
        self, pattern: DetectedPattern, action: MaintenanceAction, context: RecommendationContext
    ) -> RecommendationPriority:
        score = self.priority_score(pattern, action, context)
        if score >= 70:
            return RecommendationPriority.HIGH
        if score >= 40:
            return RecommendationPriority.MEDIUM
        return RecommendationPriority.LOW

    def success_probability(
        self, pattern: DetectedPattern, action: MaintenanceAction, context: RecommendationContext
    ) -> int | None:
        """Success probability clamped to [30, 95], or ``None`` if the raw value is below 30."""
        probability = action.effectiveness_score * (0.5 + pattern.confidence_score / 200)
        if action.required_expertise in context.available_expertise:
            probability *= 1.1
        probability *= self.catalog.cost_benefit.reliability_factors.get(pattern.equipment_type, 1.0)

        probability = round(probability)
        if probability < MIN_SUCCESS_PROBABILITY:
            return None
        return min(MAX_SUCCESS_PROBABILITY, probability)

    def urgency_deadline(self, pattern: DetectedPattern, action: MaintenanceAction) -> str | None:
        severity = PatternSeverity(pattern.severity)
        if severity is PatternSeverity.CRITICAL:
            return to_iso(self.clock() + timedelta(hours=8))
        if severity is PatternSeverity.WARNING and action.action_type is ActionType.INSPECTION:
            return to_iso(self.clock() + timedelta(hours=48))
        if action.urgency_multiplier >= 0.8:
            return to_iso(self.clock() + timedelta(weeks=1))
        return None

    @staticmethod
    def maintenance_category(pattern: DetectedPattern, action: MaintenanceAction) -> MaintenanceCategory:
        if PatternSeverity(pattern.severity) is PatternSeverity.CRITICAL:
            return MaintenanceCategory.EMERGENCY
        if PatternType(pattern.pattern_type) in (PatternType.TREND, PatternType.CORRELATION):
            return MaintenanceCategory.PREDICTIVE
        if action.action_type in (ActionType.INSPECTION, ActionType.CLEANING):
            return MaintenanceCategory.PREVENTIVE
        return MaintenanceCategory.CORRECTIVE

    @staticmethod
    def describe(pattern: DetectedPattern, action: MaintenanceAction, context: RecommendationContext) -> str:
        description = action.description.replace("{equipment_type}", pattern.equipment_type).replace(
            "{floor_number}", str(pattern.floor_number)
        )
        if pattern.confidence_score >= 90:
            description += " High-confidence detection algorithm recommends immediate attention."
        if context.operational_criticality is OperationalCriticality.HIGH:
            description += " Critical operational equipment requires priority handling."
        if PatternType(pattern.pattern_type) is PatternType.SEASONAL:
            description += " Pattern analysis indicates seasonal maintenance opportunity."
        return description

    # ------------------------------------------------------------------
    # Custom recommendations and adjustment rules
    # ------------------------------------------------------------------

    def _custom_recommendations(self, pattern: DetectedPattern) -> list[PatternRecommendation]:
        custom: list[PatternRecommendation] = []

        if pattern.confidence_score >= 85:
            custom.append(
                PatternRecommendation(
                    id=self.id_generator.new_id("custom_monitor"),
                    priority=RecommendationPriority.MEDIUM,
                    action_type=ActionType.MONITORING,
                    description=(
                        f"Implement enhanced monitoring for {pattern.equipment_type} on floor "
                        f"{pattern.floor_number} due to high-confidence pattern detection"
                    ),
                    estimated_cost=50,
                    estimated_savings=800,
                    time_to_implement_hours=1,
                    required_expertise=ExpertiseLevel.TECHNICIAN,
                    maintenance_category=MaintenanceCategory.PREDICTIVE,
                    success_probability=90,
                )
            )

        if PatternSeverity(pattern.severity) is PatternSeverity.CRITICAL:
            custom.append(
                PatternRecommendation(
                    id=self.id_generator.new_id("custom_emergency"),
                    priority=RecommendationPriority.HIGH,
                    action_type=ActionType.INSPECTION,
                    description=(
                        f"URGENT: Immediate inspection required for critical anomaly in "
                        f"{pattern.equipment_type} system"
                    ),
                    estimated_cost=200,
                    estimated_savings=5000,
                    time_to_implement_hours=2,
                    required_expertise=ExpertiseLevel.ENGINEER,
                    maintenance_category=MaintenanceCategory.EMERGENCY,
                    success_probability=85,
                    urgency_deadline=to_iso(self.clock() + timedelta(hours=4)),
                )
            )

        if PatternType(pattern.pattern_type) is PatternType.SEASONAL:
            custom.append(
                PatternRecommendation(
                    id=self.id_generator.new_id("custom_seasonal"),
                    priority=RecommendationPriority.MEDIUM,
                    action_type=ActionType.CLEANING,
                    description=(
                        f"Schedule seasonal maintenance for {pattern.equipment_type} "
                        "based on historical pattern analysis"
                    ),
                    estimated_cost=300,
                    estimated_savings=1200,
                    time_to_implement_hours=4,
                    required_expertise=ExpertiseLevel.TECHNICIAN,
                    maintenance_category=MaintenanceCategory.PREVENTIVE,
                    success_probability=75,
                )
            )

        return custom

    def _apply_adjustment_rules(
        self, recommendation: PatternRecommendation, pattern: DetectedPattern
    ) -> PatternRecommendation:
        description = recommendation.description
        savings = recommendation.estimated_savings
        hours = recommendation.time_to_implement_hours
        cost = recommendation.estimated_cost

        for rule in self.catalog.adjustment_rules:
            if not rule.matches(pattern.equipment_type, pattern.floor_number, recommendation.required_expertise):
                continue
            description += rule.description_suffix
            savings *= rule.savings_multiplier
            hours *= rule.time_multiplier
            cost += rule.cost_addition

        return replace(
            recommendation,
            description=description,
            estimated_savings=round(savings),
            time_to_implement_hours=round(hours, 1),
            estimated_cost=round(cost),
        )
