"""
Pattern Acknowledgment Service

Operators acknowledge detected patterns once they have reviewed them. An
acknowledgment flags the stored pattern and appends an audit record; a
pattern can be acknowledged once.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cubems.domain.exceptions import ConflictError, NotFoundError, ValidationError
from cubems.schemas.patterns import AcknowledgmentRequest
from cubems.utils.time import Clock, to_iso, utc_now

if TYPE_CHECKING:
    from infrastructure.database.repositories.detected_patterns import DetectedPatternRepository

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 100


class AcknowledgmentService:
    """Record and list pattern acknowledgments."""

    def __init__(self, pattern_repo: "DetectedPatternRepository", *, clock: Clock = utc_now) -> None:
        self.pattern_repo = pattern_repo
        self.clock = clock

    def acknowledge(self, request: AcknowledgmentRequest, *, user: str) -> dict[str, Any]:
        """
        Acknowledge a detected pattern.

        Raises:
            NotFoundError: the pattern was never detected (or was removed)
            ConflictError: someone already acknowledged it
            ValidationError: follow-up requested without a date
        """
        pattern = self.pattern_repo.get_pattern(request.pattern_id)
        if pattern is None:
            raise NotFoundError(
                "The specified pattern does not exist or has been removed",
                error="Pattern not found",
                detail={"pattern_id": request.pattern_id},
            )
        if pattern.acknowledged:
            raise self._already_acknowledged(pattern.acknowledged_by, pattern.acknowledged_at)

        if request.follow_up_required and request.follow_up_date is None:
            raise ValidationError(
                "Follow-up date must be specified when follow-up is required",
                error="Follow-up date required",
            )

        acknowledged_at = to_iso(self.clock())
        follow_up_date = to_iso(request.follow_up_date) if request.follow_up_date else None
        details = {
            "notes": request.notes,
            "action_planned": request.action_planned,
            "follow_up_required": request.follow_up_required,
            "follow_up_date": follow_up_date,
            "maintenance_priority": str(request.maintenance_priority),
            "estimated_completion_hours": request.estimated_completion_hours,
        }
        if not self.pattern_repo.mark_acknowledged(request.pattern_id, user, acknowledged_at, details):
            # Lost a race with a concurrent acknowledgment
            current = self.pattern_repo.get_pattern(request.pattern_id)
            raise self._already_acknowledged(
                current.acknowledged_by if current else None,
                current.acknowledged_at if current else None,
            )

        logger.info(
            "Pattern %s acknowledged by %s (follow_up=%s)", request.pattern_id, user, request.follow_up_required
        )

        next_steps = (
            [f"Follow-up scheduled for {follow_up_date}"]
            if request.follow_up_required
            else ["No further action required"]
        )
        return {
            "acknowledgment": {
                "pattern_id": request.pattern_id,
                "acknowledged_by": user,
                "acknowledged_at": acknowledged_at,
                **details,
            },
            "pattern_id": request.pattern_id,
            "message": "Pattern successfully acknowledged",
            "next_steps": next_steps,
        }

    def history(
        self,
        *,
        pattern_id: str | None = None,
        acknowledged_by: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Page through acknowledgment records, newest first."""
        if limit > MAX_HISTORY_LIMIT:
            raise ValidationError(f"Limit cannot exceed {MAX_HISTORY_LIMIT} records", error="Invalid limit")
        if limit < 1 or offset < 0:
            raise ValidationError("Limit must be positive and offset non-negative", error="Invalid pagination")

        records = self.pattern_repo.list_acknowledgments(
            pattern_id=pattern_id, acknowledged_by=acknowledged_by, limit=limit, offset=offset
        )
        total = self.pattern_repo.count_acknowledgments(pattern_id=pattern_id, acknowledged_by=acknowledged_by)
        return {
            "acknowledgments": records,
            "pagination": {
                "limit": limit,
                "offset": offset,
                "total": total,
                "has_more": offset + len(records) < total,
            },
        }

    @staticmethod
    def _already_acknowledged(acknowledged_by: str | None, acknowledged_at: str | None) -> ConflictError:
        return ConflictError(
            "This pattern has already been acknowledged",
            error="Pattern already acknowledged",
            detail={"acknowledged_by": acknowledged_by, "acknowledged_at": acknowledged_at},
        )
