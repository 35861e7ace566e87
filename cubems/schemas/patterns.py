"""
Pattern Schemas
===============

Request schemas for the pattern detection and acknowledgment endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from cubems.enums import AlgorithmType, MaintenancePriority, PatternSeverity, PatternType, TimeWindow

DETECTION_SUGGESTIONS = [
    "Ensure sensor_ids is an array of valid sensor identifiers",
    "Check that time_window is one of: 1h, 6h, 24h, 7d, 30d",
    "Verify confidence_threshold is between 0 and 100",
    "Ensure algorithm sensitivity is between 1 and 10",
]

ACKNOWLEDGMENT_SUGGESTIONS = [
    "Ensure pattern_id is provided",
    "Check that follow_up_date is in ISO format if specified",
    "Verify notes are under 500 characters",
    "Ensure estimated_completion_hours is between 0 and 168",
]


class AlgorithmConfigRequest(BaseModel):
    """Optional algorithm tuning supplied by the caller."""

    model_config = ConfigDict(extra="ignore")

    algorithm_type: AlgorithmType = Field(default=AlgorithmType.STATISTICAL_ZSCORE)
    sensitivity: float = Field(default=7, ge=1, le=10)
    threshold_multiplier: float = Field(default=2.5, ge=1, le=5)
    seasonal_adjustment: bool = Field(default=True)


class PatternDetectionRequest(BaseModel):
    """Request schema for POST /api/patterns/detect."""

    model_config = ConfigDict(extra="ignore")

    sensor_ids: list[str] = Field(..., min_length=1, max_length=50, description="Sensors to analyse (1-50)")
    time_window: TimeWindow = Field(..., description="Lookback window: 1h, 6h, 24h, 7d or 30d")
    severity_filter: Optional[list[PatternSeverity]] = Field(default=None)
    confidence_threshold: float = Field(default=70, ge=0, le=100)
    pattern_types: Optional[list[PatternType]] = Field(default=None)
    include_recommendations: bool = Field(default=False)
    algorithm_config: Optional[AlgorithmConfigRequest] = Field(default=None)


class AcknowledgmentRequest(BaseModel):
    """Request schema for POST /api/patterns/acknowledge."""

    model_config = ConfigDict(extra="ignore")

    pattern_id: str = Field(..., min_length=1, description="Pattern ID is required")
    notes: Optional[str] = Field(default=None, max_length=500)
    action_planned: Optional[str] = Field(default=None, max_length=200)
    follow_up_required: bool = Field(default=False)
    follow_up_date: Optional[datetime] = Field(default=None, description="ISO-8601 datetime")
    maintenance_priority: MaintenancePriority = Field(default=MaintenancePriority.MEDIUM)
    estimated_completion_hours: Optional[float] = Field(default=None, ge=0, le=168)

    @model_validator(mode="after")
    def _follow_up_date_must_be_aware(self) -> "AcknowledgmentRequest":
        # Naive datetimes are read as UTC
        if self.follow_up_date is not None and self.follow_up_date.tzinfo is None:
            self.follow_up_date = self.follow_up_date.replace(tzinfo=timezone.utc)
        return self


def validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors into ``{field, message, code}`` records."""
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
            "code": err.get("type", ""),
        }
        for err in exc.errors()
    ]
