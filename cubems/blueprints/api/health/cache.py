"""
Cache Health Endpoints
======================

Health monitoring endpoints for cache metrics.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from cubems.blueprints.api._common import get_container
from cubems.utils.cache import CacheRegistry
from cubems.utils.http import safe_route, success_response
from cubems.utils.time import iso_now

logger = logging.getLogger("health_api")


def register_cache_routes(health_api: Blueprint):
    """Register cache health routes on the blueprint."""

    @health_api.get("/cache")
    @safe_route("Failed to get cache metrics")
    def get_cache_metrics() -> Response:
        """
        Sweep expired entries, then report cache metrics.

        Returns:
            {
                "pattern_cache": {...},
                "expired_removed": 3,
                "caches": {...},
                "timestamp": "2026-01-01T..."
            }
        """
        container = get_container()
        removed = container.pattern_cache.cleanup()
        registry = CacheRegistry.get_instance()

        return success_response(
            {
                "pattern_cache": container.pattern_cache.get_stats(),
                "expired_removed": removed,
                "caches": registry.get_all_stats(),
                "timestamp": iso_now(),
            }
        )
