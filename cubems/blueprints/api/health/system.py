"""
System Health Endpoints
=======================
"""

from __future__ import annotations

from flask import Blueprint, Response

from cubems.utils.http import safe_route, success_response
from cubems.utils.time import iso_now


def register_system_routes(health_api: Blueprint):
    """Register liveness routes on the blueprint."""

    @health_api.get("/ping")
    @safe_route("Failed to handle ping request")
    def ping() -> Response:
        """
        Basic liveness check for monitoring tools.

        Returns:
            {"status": "ok", "timestamp": "..."}
        """
        return success_response({"status": "ok", "timestamp": iso_now()})
