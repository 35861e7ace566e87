"""
Pattern Detection Cache
=======================

Memoizes detector results and per-sensor statistics within one process.

Keys:
    pattern:<md5>          sorted sensor ids + time window + algorithm config
    stats:<sensor>:<win>   per-sensor StatisticalMetrics
    correlation:<md5>      sorted sensor ids

Hashed keys do not reveal their sensors, so the cache keeps a side index
from sensor id to the keys that mention it for :meth:`invalidate_sensor`.
The backend reports every key it drops, so the index never outlives the
entries it points at.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import defaultdict
from threading import Lock
from typing import Any, Iterable

from cubems.domain.patterns import AnomalyDetectionConfig, DetectionResult, StatisticalMetrics
from cubems.services.protocols import PatternCacheBackend

logger = logging.getLogger(__name__)

CORRELATION_TTL_FACTOR = 2


def _md5(payload: str) -> str:
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class PatternDetectionCache:
    def __init__(self, backend: PatternCacheBackend, *, ttl_seconds: float = 300, enabled: bool = True) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._sensor_index: dict[str, set[str]] = defaultdict(set)
        self._key_sensors: dict[str, tuple[str, ...]] = {}
        self._index_lock = Lock()
        backend.add_removal_listener(self._forget)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def pattern_key(sensor_ids: Iterable[str], time_window: str, config: AnomalyDetectionConfig | dict) -> str:
        fingerprint = config.fingerprint() if isinstance(config, AnomalyDetectionConfig) else config
        canonical = json.dumps(
            {"sensors": sorted(sensor_ids), "window": str(time_window), "config": fingerprint},
            sort_keys=True,
            separators=(",", ":"),
        )
        return f"pattern:{_md5(canonical)}"

    @staticmethod
    def stats_key(sensor_id: str, time_window: str) -> str:
        return f"stats:{sensor_id}:{time_window}"

    @staticmethod
    def correlation_key(sensor_ids: Iterable[str]) -> str:
        return f"correlation:{_md5(','.join(sorted(sensor_ids)))}"

    # ------------------------------------------------------------------
    # Pattern results
    # ------------------------------------------------------------------

    def get_pattern_results(
        self, sensor_ids: Iterable[str], time_window: str, config: AnomalyDetectionConfig
    ) -> DetectionResult | None:
        if not self.enabled:
            return None
        return self.backend.get(self.pattern_key(sensor_ids, time_window, config))

    def cache_pattern_results(
        self,
        sensor_ids: Iterable[str],
        time_window: str,
        config: AnomalyDetectionConfig,
        result: DetectionResult,
    ) -> None:
        if not self.enabled:
            return
        sensors = list(sensor_ids)
        key = self.pattern_key(sensors, time_window, config)
        self._index(key, sensors)
        self.backend.set(key, result, self.ttl_seconds)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def cache_statistics(self, sensor_id: str, time_window: str, stats: StatisticalMetrics) -> None:
        if not self.enabled:
            return
        key = self.stats_key(sensor_id, time_window)
        self._index(key, [sensor_id])
        self.backend.set(key, stats, self.ttl_seconds)

    def get_statistics(self, sensor_id: str, time_window: str) -> StatisticalMetrics | None:
        if not self.enabled:
            return None
        return self.backend.get(self.stats_key(sensor_id, time_window))

    # ------------------------------------------------------------------
    # Correlation matrices
    # ------------------------------------------------------------------

    def cache_correlation_matrix(self, sensor_ids: Iterable[str], matrix: Any) -> None:
        """Store a cross-sensor correlation result for twice the normal TTL.

        The detection pipeline does not compute correlations yet; this key
        family is reserved so a correlation analyzer can share the cache and
        its per-sensor invalidation.
        """
        if not self.enabled:
            return
        sensors = list(sensor_ids)
        key = self.correlation_key(sensors)
        self._index(key, sensors)
        self.backend.set(key, matrix, self.ttl_seconds * CORRELATION_TTL_FACTOR)

    def get_correlation_matrix(self, sensor_ids: Iterable[str]) -> Any | None:
        if not self.enabled:
            return None
        return self.backend.get(self.correlation_key(sensor_ids))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def invalidate_sensor(self, sensor_id: str) -> int:
        """Drop every cached entry that involves ``sensor_id``."""
        with self._index_lock:
            keys = self._sensor_index.pop(sensor_id, set())
        stats_prefix = f"stats:{sensor_id}:"
        removed = self.backend.delete_where(lambda key: key in keys or key.startswith(stats_prefix))
        if removed:
            logger.info("Invalidated %s cache entries for sensor %s", removed, sensor_id)
        return removed

    def cleanup(self) -> int:
        removed = self.backend.cleanup_expired()
        if removed:
            logger.info("Cleaned up %s expired cache entries", removed)
        return removed

    def clear_all(self) -> None:
        self.backend.clear()
        with self._index_lock:
            self._sensor_index.clear()
            self._key_sensors.clear()

    def get_stats(self) -> dict[str, Any]:
        return self.backend.get_stats()

    def indexed_keys(self, sensor_id: str) -> set[str]:
        """Cached keys currently attributed to ``sensor_id``."""
        with self._index_lock:
            return set(self._sensor_index.get(sensor_id, ()))

    def _index(self, key: str, sensor_ids: Iterable[str]) -> None:
        sensors = tuple(dict.fromkeys(sensor_ids))
        with self._index_lock:
            self._key_sensors[key] = sensors
            for sensor_id in sensors:
                self._sensor_index[sensor_id].add(key)

    def _forget(self, keys: list[str]) -> None:
        with self._index_lock:
            for key in keys:
                for sensor_id in self._key_sensors.pop(key, ()):
                    indexed = self._sensor_index.get(sensor_id)
                    if indexed is None:
                        continue
                    indexed.discard(key)
                    if not indexed:
                        del self._sensor_index[sensor_id]
