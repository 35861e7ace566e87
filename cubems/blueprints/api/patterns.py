"""Pattern Detection API
========================

Routes:
    POST /api/patterns/detect                    Detect anomalies across sensors
    POST /api/patterns/acknowledge               Acknowledge a detected pattern
    GET  /api/patterns/acknowledgments           Acknowledgment history
    GET  /api/patterns/statistics/<sensor_id>    Cached per-sensor statistics
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, request

from cubems.blueprints.api._common import get_container, parse_body
from cubems.domain.exceptions import NotFoundError, ValidationError
from cubems.enums import TimeWindow
from cubems.middleware.rate_limiting import rate_limited
from cubems.schemas.patterns import (
    ACKNOWLEDGMENT_SUGGESTIONS,
    DETECTION_SUGGESTIONS,
    AcknowledgmentRequest,
    PatternDetectionRequest,
)
from cubems.security.auth import api_login_required, current_tier, current_username
from cubems.utils.http import safe_route, success_response

logger = logging.getLogger(__name__)

patterns_api = Blueprint("patterns_api", __name__)


@patterns_api.post("/detect")
@api_login_required("Please sign in to use pattern detection")
@rate_limited("patterns/detect")
@safe_route(
    "Pattern detection failed",
    generic_message="An unexpected error occurred during pattern analysis",
    error_prefix="DET",
    suggestions=[
        "Try again with a simpler request",
        "Check sensor data availability",
        "Contact support if problem persists",
    ],
)
def detect_patterns() -> Response:
    """Run anomaly detection for the requested sensors and window.

    Body: see :class:`PatternDetectionRequest`.

    Returns:
        ``{"patterns": [...], "summary": {...}, "analysis_metadata": {...}}``
        plus ``warnings`` when recommendations could not be generated.
    """
    body = parse_body(
        PatternDetectionRequest,
        DETECTION_SUGGESTIONS,
        "Please check your request parameters and try again",
    )
    outcome = get_container().detection_service.detect(body, user_id=current_username(), tier=current_tier())
    return success_response(outcome.to_dict(), warnings=outcome.warnings, headers=outcome.headers())


@patterns_api.post("/acknowledge")
@api_login_required("Please sign in to acknowledge patterns")
@safe_route("Acknowledgment failed", generic_message="Failed to acknowledge pattern", error_prefix="ACK")
def acknowledge_pattern() -> Response:
    body = parse_body(AcknowledgmentRequest, ACKNOWLEDGMENT_SUGGESTIONS, "Please check your request parameters")
    data = get_container().acknowledgment_service.acknowledge(body, user=current_username())
    return success_response(data)


@patterns_api.get("/acknowledgments")
@api_login_required("Please sign in to view acknowledgments")
@safe_route(
    "Failed to retrieve acknowledgment history",
    generic_message="Failed to retrieve acknowledgment history",
    error_prefix="ACK_HIST",
)
def acknowledgment_history() -> Response:
    """List acknowledgments, newest first.

    Query parameters:
        pattern_id (str, optional)
        user_id    (str, optional)  acknowledging user
        limit      (int, optional)  default 50, max 100
        offset     (int, optional)  default 0
    """
    try:
        limit = int(request.args.get("limit", 50))
        offset = int(request.args.get("offset", 0))
    except ValueError:
        raise ValidationError("limit and offset must be integers", error="Invalid pagination") from None

    data = get_container().acknowledgment_service.history(
        pattern_id=request.args.get("pattern_id"),
        acknowledged_by=request.args.get("user_id"),
        limit=limit,
        offset=offset,
    )
    return success_response(data)


@patterns_api.get("/statistics/<sensor_id>")
@api_login_required("Please sign in to view sensor statistics")
@safe_route("Failed to get sensor statistics", error_prefix="STAT")
def sensor_statistics(sensor_id: str) -> Response:
    """Statistics cached for ``sensor_id`` by the last detection pass over ``time_window``."""
    raw_window = request.args.get("time_window", TimeWindow.ONE_DAY.value)
    try:
        time_window = TimeWindow(raw_window)
    except ValueError:
        raise ValidationError(
            "time_window must be one of: 1h, 6h, 24h, 7d, 30d", error="Invalid time window"
        ) from None

    stats = get_container().pattern_cache.get_statistics(sensor_id, time_window.value)
    if stats is None:
        raise NotFoundError(
            "No cached statistics for this sensor and window. Run a detection first.",
            error="Statistics not found",
            detail={"sensor_id": sensor_id, "time_window": time_window.value},
        )
    return success_response({"sensor_id": sensor_id, "time_window": time_window.value, "statistics": stats.to_dict()})
