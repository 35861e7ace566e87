from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, Sequence

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; stay well under the default.
_MAX_SENSORS_PER_QUERY = 500


class SensorReadingOperations:
    """Database operations for the SensorReadings table."""

    def insert_sensor_readings(self, rows: Iterable[tuple[str, str, str, float]]) -> int:
        """Insert ``(sensor_id, equipment_type, timestamp, value)`` rows; duplicates are ignored."""
        try:
            db = self.get_db()
            before = db.total_changes
            db.executemany(
                """
                INSERT OR IGNORE INTO SensorReadings (sensor_id, equipment_type, timestamp, value)
                VALUES (?, ?, ?, ?)
                """,
                list(rows),
            )
            db.commit()
            return db.total_changes - before
        except sqlite3.Error:
            logger.exception("Failed to insert sensor readings")
            raise

    def get_sensor_readings(self, sensor_ids: Sequence[str], start: str, end: str) -> list[dict[str, Any]]:
        """Readings for ``sensor_ids`` between ``start`` and ``end`` (inclusive ISO strings)."""
        if not sensor_ids:
            return []
        rows: list[dict[str, Any]] = []
        db = self.get_db()
        for offset in range(0, len(sensor_ids), _MAX_SENSORS_PER_QUERY):
            chunk = list(sensor_ids[offset : offset + _MAX_SENSORS_PER_QUERY])
            placeholders = ",".join("?" for _ in chunk)
            cursor = db.execute(
                f"""
                SELECT sensor_id, equipment_type, timestamp, value
                FROM SensorReadings
                WHERE sensor_id IN ({placeholders}) AND timestamp >= ? AND timestamp <= ?
                ORDER BY timestamp, sensor_id
                """,
                (*chunk, start, end),
            )
            rows.extend(dict(row) for row in cursor.fetchall())
        if len(sensor_ids) > _MAX_SENSORS_PER_QUERY:
            rows.sort(key=lambda r: (r["timestamp"], r["sensor_id"]))
        return rows

    def count_sensor_readings(self, sensor_id: str | None = None) -> int:
        db = self.get_db()
        if sensor_id is None:
            cursor = db.execute("SELECT COUNT(*) FROM SensorReadings")
        else:
            cursor = db.execute("SELECT COUNT(*) FROM SensorReadings WHERE sensor_id = ?", (sensor_id,))
        return int(cursor.fetchone()[0])
