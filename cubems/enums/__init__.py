"""
Enumerations Package
====================

Centralized enums for the pattern analytics service.

Usage:
    from cubems.enums import PatternSeverity, AlgorithmType
"""

from cubems.enums.maintenance import (
    ActionType,
    ExpertiseLevel,
    MaintenanceCategory,
    MaintenancePriority,
    OperationalCriticality,
    RecommendationPriority,
)
from cubems.enums.patterns import (
    AlgorithmType,
    ConfidenceMethod,
    EquipmentType,
    Granularity,
    OutlierHandling,
    PatternSeverity,
    PatternType,
    SubscriptionTier,
    TimeWindow,
)

__all__ = [
    "ActionType",
    "AlgorithmType",
    "ConfidenceMethod",
    "EquipmentType",
    "ExpertiseLevel",
    "Granularity",
    "MaintenanceCategory",
    "MaintenancePriority",
    "OperationalCriticality",
    "OutlierHandling",
    "PatternSeverity",
    "PatternType",
    "RecommendationPriority",
    "SubscriptionTier",
    "TimeWindow",
]
