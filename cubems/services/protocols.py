"""
Service Ports
=============

Structural contracts between the analytics services and their collaborators.
Concrete adapters (SQLite repositories, the in-memory cache, id generators)
satisfy these through duck typing; tests substitute fakes freely.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Protocol, Sequence, runtime_checkable

from cubems.domain.patterns import DetectedPattern, SensorReading


@runtime_checkable
class IdGenerator(Protocol):
    """Produces unique, prefixed identifiers (``pattern_...``, ``rec_...``)."""

    def new_id(self, prefix: str) -> str: ...


@runtime_checkable
class ReadingSource(Protocol):
    """Read side of the sensor telemetry store."""

    def fetch_window(self, sensor_ids: Sequence[str], start: datetime, end: datetime) -> list[SensorReading]:
        """Readings for ``sensor_ids`` with ``start <= timestamp <= end``, ordered by timestamp."""
        ...


@runtime_checkable
class PatternCacheBackend(Protocol):
    """Key/value store with per-entry TTL used by the pattern cache."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    def has(self, key: str) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def delete_where(self, predicate) -> int: ...

    def clear(self) -> None: ...

    def cleanup_expired(self) -> int: ...

    def get_stats(self) -> dict[str, Any]: ...

    def add_removal_listener(self, listener: Callable[[list[str]], None]) -> None: ...


@runtime_checkable
class DetectedPatternStore(Protocol):
    """Persistence for detected patterns so they can be acknowledged later."""

    def save_patterns(self, patterns: Iterable[DetectedPattern]) -> int: ...

    def get_pattern(self, pattern_id: str) -> DetectedPattern | None: ...

    def mark_acknowledged(self, pattern_id: str, user: str, acknowledged_at: str, details: dict[str, Any]) -> bool: ...
