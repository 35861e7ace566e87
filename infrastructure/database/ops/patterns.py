from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class PatternOperations:
    """Database operations for DetectedPatterns and PatternAcknowledgments."""

    def upsert_detected_patterns(self, rows: Iterable[dict[str, Any]]) -> int:
        """Insert or refresh pattern rows, keeping any existing acknowledgment."""
        try:
            db = self.get_db()
            count = 0
            for row in rows:
                db.execute(
                    """
                    INSERT INTO DetectedPatterns (
                        pattern_id, sensor_id, equipment_type, pattern_type, severity,
                        confidence_score, timestamp, created_at, payload
                    ) VALUES (
                        :pattern_id, :sensor_id, :equipment_type, :pattern_type, :severity,
                        :confidence_score, :timestamp, :created_at, :payload
                    )
                    ON CONFLICT(pattern_id) DO UPDATE SET payload = excluded.payload
                    """,
                    row,
                )
                count += 1
            db.commit()
            return count
        except sqlite3.Error:
            logger.exception("Failed to persist detected patterns")
            raise

    def get_detected_pattern(self, pattern_id: str) -> dict[str, Any] | None:
        db = self.get_db()
        cursor = db.execute("SELECT * FROM DetectedPatterns WHERE pattern_id = ?", (pattern_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def acknowledge_detected_pattern(self, pattern_id: str, acknowledged_by: str, acknowledged_at: str) -> bool:
        """Flag the pattern acknowledged; False if it was missing or already acknowledged."""
        db = self.get_db()
        cursor = db.execute(
            """
            UPDATE DetectedPatterns
            SET acknowledged = 1, acknowledged_by = ?, acknowledged_at = ?
            WHERE pattern_id = ? AND acknowledged = 0
            """,
            (acknowledged_by, acknowledged_at, pattern_id),
        )
        return cursor.rowcount == 1

    def insert_pattern_acknowledgment(self, row: dict[str, Any]) -> int | None:
        db = self.get_db()
        cursor = db.execute(
            """
            INSERT INTO PatternAcknowledgments (
                pattern_id, acknowledged_by, acknowledged_at, notes, action_planned,
                follow_up_required, follow_up_date, maintenance_priority, estimated_completion_hours
            ) VALUES (
                :pattern_id, :acknowledged_by, :acknowledged_at, :notes, :action_planned,
                :follow_up_required, :follow_up_date, :maintenance_priority, :estimated_completion_hours
            )
            """,
            row,
        )
        return cursor.lastrowid

    @staticmethod
    def _acknowledgment_filter(pattern_id: str | None, acknowledged_by: str | None) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []
        if pattern_id:
            conditions.append("pattern_id = ?")
            params.append(pattern_id)
        if acknowledged_by:
            conditions.append("acknowledged_by = ?")
            params.append(acknowledged_by)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    def list_pattern_acknowledgments(
        self,
        *,
        pattern_id: str | None = None,
        acknowledged_by: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        where, params = self._acknowledgment_filter(pattern_id, acknowledged_by)
        db = self.get_db()
        cursor = db.execute(
            f"""
            SELECT * FROM PatternAcknowledgments
            {where}
            ORDER BY acknowledged_at DESC, acknowledgment_id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, offset),
        )
        return [dict(row) for row in cursor.fetchall()]

    def count_pattern_acknowledgments(
        self, *, pattern_id: str | None = None, acknowledged_by: str | None = None
    ) -> int:
        where, params = self._acknowledgment_filter(pattern_id, acknowledged_by)
        db = self.get_db()
        cursor = db.execute(f"SELECT COUNT(*) FROM PatternAcknowledgments {where}", params)
        return int(cursor.fetchone()[0])
