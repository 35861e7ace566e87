"""
Health API Blueprint
====================

Liveness and cache monitoring endpoints.

Routes:
- GET /api/health/ping - Basic liveness check
- GET /api/health/cache - Pattern cache metrics (sweeps expired entries first)
"""

from __future__ import annotations

import logging

from flask import Blueprint

logger = logging.getLogger("health_api")

health_api = Blueprint("health_api", __name__)

from cubems.blueprints.api.health.cache import register_cache_routes  # noqa: E402
from cubems.blueprints.api.health.system import register_system_routes  # noqa: E402

register_system_routes(health_api)
register_cache_routes(health_api)

__all__ = ["health_api"]
