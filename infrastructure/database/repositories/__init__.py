"""Repository facades exposing typed accessors over low-level mixins."""

from infrastructure.database.repositories.detected_patterns import DetectedPatternRepository
from infrastructure.database.repositories.sensor_readings import SensorReadingRepository

__all__ = ["DetectedPatternRepository", "SensorReadingRepository"]
