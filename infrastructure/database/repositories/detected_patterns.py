from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable

from cubems.domain.exceptions import RepositoryError
from cubems.domain.patterns import DetectedPattern
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectedPatternRepository:
    """Repository facade for detected patterns and their acknowledgments."""

    _backend: SQLiteDatabaseHandler

    def save_patterns(self, patterns: Iterable[DetectedPattern]) -> int:
        rows = []
        for pattern in patterns:
            payload = pattern.to_dict()
            rows.append(
                {
                    "pattern_id": pattern.id,
                    "sensor_id": pattern.sensor_id,
                    "equipment_type": pattern.equipment_type,
                    "pattern_type": payload["pattern_type"],
                    "severity": payload["severity"],
                    "confidence_score": pattern.confidence_score,
                    "timestamp": pattern.timestamp,
                    "created_at": pattern.created_at,
                    "payload": json.dumps(payload),
                }
            )
        if not rows:
            return 0
        try:
            return self._backend.upsert_detected_patterns(rows)
        except sqlite3.Error as exc:
            raise RepositoryError(f"Failed to persist detected patterns: {exc}") from exc

    def get_pattern(self, pattern_id: str) -> DetectedPattern | None:
        row = self._backend.get_detected_pattern(pattern_id)
        if row is None:
            return None
        data = json.loads(row["payload"])
        data["acknowledged"] = bool(row["acknowledged"])
        data["acknowledged_by"] = row["acknowledged_by"]
        data["acknowledged_at"] = row["acknowledged_at"]
        return DetectedPattern.from_dict(data)

    def mark_acknowledged(self, pattern_id: str, user: str, acknowledged_at: str, details: dict[str, Any]) -> bool:
        """Flag the pattern and record the acknowledgment in one transaction.

        Returns False when another request acknowledged the pattern first.
        """
        try:
            with self._backend.connection():
                if not self._backend.acknowledge_detected_pattern(pattern_id, user, acknowledged_at):
                    return False
                self._backend.insert_pattern_acknowledgment(
                    {
                        "pattern_id": pattern_id,
                        "acknowledged_by": user,
                        "acknowledged_at": acknowledged_at,
                        "notes": details.get("notes"),
                        "action_planned": details.get("action_planned"),
                        "follow_up_required": int(bool(details.get("follow_up_required"))),
                        "follow_up_date": details.get("follow_up_date"),
                        "maintenance_priority": details.get("maintenance_priority", "medium"),
                        "estimated_completion_hours": details.get("estimated_completion_hours"),
                    }
                )
                return True
        except sqlite3.Error as exc:
            logger.exception("Failed to acknowledge pattern %s", pattern_id)
            raise RepositoryError(f"Failed to acknowledge pattern: {exc}") from exc

    def list_acknowledgments(
        self,
        *,
        pattern_id: str | None = None,
        acknowledged_by: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        rows = self._backend.list_pattern_acknowledgments(
            pattern_id=pattern_id, acknowledged_by=acknowledged_by, limit=limit, offset=offset
        )
        for row in rows:
            row["follow_up_required"] = bool(row["follow_up_required"])
        return rows

    def count_acknowledgments(self, *, pattern_id: str | None = None, acknowledged_by: str | None = None) -> int:
        return self._backend.count_pattern_acknowledgments(pattern_id=pattern_id, acknowledged_by=acknowledged_by)
