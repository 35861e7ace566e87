from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Sequence

from cubems.domain.exceptions import RepositoryError
from cubems.domain.patterns import SensorReading
from cubems.utils.time import coerce_datetime
from infrastructure.database.ops.sensor_readings import SensorReadingOperations

logger = logging.getLogger(__name__)


def db_timestamp(moment: datetime) -> str:
    """Fixed-width UTC ISO string so lexical order matches time order."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class SensorReadingRepository:
    """Repository facade for sensor telemetry; the detection service's reading source."""

    _backend: SensorReadingOperations

    def fetch_window(self, sensor_ids: Sequence[str], start: datetime, end: datetime) -> list[SensorReading]:
        try:
            rows = self._backend.get_sensor_readings(list(sensor_ids), db_timestamp(start), db_timestamp(end))
        except sqlite3.Error as exc:
            logger.exception("Failed to load readings for %s sensors", len(sensor_ids))
            raise RepositoryError(f"Failed to load sensor readings: {exc}") from exc

        return [
            SensorReading(
                timestamp=coerce_datetime(row["timestamp"]),
                sensor_id=row["sensor_id"],
                equipment_type=row["equipment_type"],
                value=float(row["value"]),
            )
            for row in rows
        ]

    def insert_readings(self, readings: Iterable[SensorReading]) -> int:
        rows = [(r.sensor_id, str(r.equipment_type), db_timestamp(r.timestamp), float(r.value)) for r in readings]
        if not rows:
            return 0
        try:
            return self._backend.insert_sensor_readings(rows)
        except sqlite3.Error as exc:
            raise RepositoryError(f"Failed to store sensor readings: {exc}") from exc

    def count(self, sensor_id: str | None = None) -> int:
        return self._backend.count_sensor_readings(sensor_id)
