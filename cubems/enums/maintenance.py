"""
Maintenance Enumerations
========================

Enums used by the recommendation engine and the acknowledgment workflow.
"""

from enum import Enum


class RecommendationPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class ActionType(str, Enum):
    """Kind of maintenance work a recommendation asks for."""

    INSPECTION = "inspection"
    CALIBRATION = "calibration"
    CLEANING = "cleaning"
    REPLACEMENT = "replacement"
    MONITORING = "monitoring"
    REPAIR = "repair"

    def __str__(self) -> str:
        return self.value


class ExpertiseLevel(str, Enum):
    BASIC = "basic"
    TECHNICIAN = "technician"
    ENGINEER = "engineer"
    SPECIALIST = "specialist"

    def __str__(self) -> str:
        return self.value


class MaintenanceCategory(str, Enum):
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
    PREDICTIVE = "predictive"
    EMERGENCY = "emergency"

    def __str__(self) -> str:
        return self.value


class OperationalCriticality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value


class MaintenancePriority(str, Enum):
    """Priority an operator assigns when acknowledging a pattern."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value
