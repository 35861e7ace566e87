# cubems/utils/cache.py
"""Per-process TTL cache with hit-count eviction, periodic sweep and metrics."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Flat per-entry estimate used for the memory figure in stats.
ESTIMATED_ENTRY_BYTES = 5000


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float
    created_at: float
    hit_count: int = field(default=0)


class HitCountTTLCache:
    """Bounded TTL cache that evicts the least-hit entry when full.

    Ties on hit count go to the oldest entry. Expired entries are dropped
    lazily on read and proactively by :meth:`cleanup_expired`, which also
    runs from :meth:`set` once ``sweep_interval`` seconds have passed.

    Removal listeners are called with the keys of every entry that leaves
    the cache (expiry, eviction, deletion or clear), outside the lock.
    """

    def __init__(
        self,
        *,
        max_entries: int = 1000,
        default_ttl: float = 300,
        sweep_interval: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.
        Args:
            max_entries: Maximum number of live entries
            default_ttl: Time-to-live in seconds when ``set`` is not given one
            sweep_interval: Seconds between opportunistic expiry sweeps
            clock: Monotonic seconds source; tests pass a fake
        """
        self.max_entries = max(1, max_entries)
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._last_sweep = clock()
        self._removal_listeners: list[Callable[[list[str]], None]] = []

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def add_removal_listener(self, listener: Callable[[list[str]], None]) -> None:
        """Call ``listener(keys)`` whenever entries leave the cache."""
        self._removal_listeners.append(listener)

    def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or ``None``."""
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at > now:
                entry.hit_count += 1
                self._hits += 1
                return entry.value
            del self._store[key]
            self._misses += 1
        self._notify_removed([key])
        return None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        removed: list[str] = []
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval:
                removed.extend(self._sweep_locked(now))
            if key not in self._store and len(self._store) >= self.max_entries:
                removed.append(self._evict_locked())
            self._store[key] = CacheEntry(key=key, value=value, expires_at=now + ttl, created_at=now)
        self._notify_removed(removed)

    def has(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if entry.expires_at > now:
                return True
            del self._store[key]
        self._notify_removed([key])
        return False

    def delete(self, key: str) -> bool:
        with self._lock:
            found = self._store.pop(key, None) is not None
        if found:
            self._notify_removed([key])
        return found

    def delete_where(self, predicate: Callable[[str], bool]) -> int:
        """Drop every entry whose key satisfies ``predicate``; returns the count."""
        with self._lock:
            doomed = [key for key in self._store if predicate(key)]
            for key in doomed:
                del self._store[key]
        self._notify_removed(doomed)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            removed = list(self._store)
            self._store.clear()
        self._notify_removed(removed)

    def cleanup_expired(self) -> int:
        """Purge expired entries now; returns how many were removed."""
        with self._lock:
            expired = self._sweep_locked(self._clock())
        self._notify_removed(expired)
        return len(expired)

    def _sweep_locked(self, now: float) -> list[str]:
        expired = [key for key, entry in self._store.items() if entry.expires_at <= now]
        for key in expired:
            del self._store[key]
        self._last_sweep = now
        if expired:
            logger.debug("Cache sweep removed %s expired entries", len(expired))
        return expired

    def _evict_locked(self) -> str:
        victim = min(self._store.values(), key=lambda e: (e.hit_count, e.created_at))
        del self._store[victim.key]
        self._evictions += 1
        return victim.key

    def _notify_removed(self, keys: list[str]) -> None:
        if not keys:
            return
        for listener in self._removal_listeners:
            listener(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics for monitoring.

        Returns:
            Dictionary with cache metrics including:
            - hits / misses: lookup counters since construction
            - hit_rate: hits / (hits + misses), 0-1 rounded to 2 places
            - total_entries: entries currently stored (expired ones included until swept)
            - memory_usage_mb: flat per-entry estimate
            - average_age: mean entry age in seconds
            - evictions: capacity evictions
        """
        now = self._clock()
        with self._lock:
            entries = list(self._store.values())
            hits = self._hits
            misses = self._misses
            evictions = self._evictions

        total_requests = hits + misses
        hit_rate = hits / total_requests if total_requests else 0.0
        average_age = sum(now - e.created_at for e in entries) / len(entries) if entries else 0.0

        return {
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hit_rate, 2),
            "total_entries": len(entries),
            "memory_usage_mb": round(len(entries) * ESTIMATED_ENTRY_BYTES / (1024 * 1024), 4),
            "average_age": round(average_age, 3),
            "evictions": evictions,
            "max_entries": self.max_entries,
            "default_ttl_seconds": self.default_ttl,
        }


class CacheRegistry:
    """
    Global registry for tracking cache instances across services.

    Provides centralized monitoring for the health endpoint.
    """

    _instance: "CacheRegistry" | None = None
    _lock = Lock()

    def __init__(self) -> None:
        self._caches: dict[str, HitCountTTLCache] = {}
        self._registry_lock = Lock()

    @classmethod
    def get_instance(cls) -> "CacheRegistry":
        """Get the singleton instance of CacheRegistry."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = CacheRegistry()
        return cls._instance

    def register(self, name: str, cache: HitCountTTLCache) -> None:
        """
        Register a cache for monitoring.

        Re-registering a name replaces the previous cache, so repeated
        ``create_app`` calls in one process always report the live instance.
        """
        with self._registry_lock:
            if name in self._caches and self._caches[name] is not cache:
                logger.debug("Replacing registered cache '%s'", name)
            self._caches[name] = cache

    def unregister(self, name: str) -> None:
        with self._registry_lock:
            self._caches.pop(name, None)

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        with self._registry_lock:
            caches = dict(self._caches)
        return {name: cache.get_stats() for name, cache in caches.items()}

    def cleanup_all(self) -> dict[str, int]:
        """Sweep every registered cache; returns removed counts by name."""
        with self._registry_lock:
            caches = dict(self._caches)
        return {name: cache.cleanup_expired() for name, cache in caches.items()}
