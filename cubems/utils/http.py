from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import Response, current_app, has_app_context, jsonify

from cubems.utils.ids import error_id as new_error_id
from cubems.utils.time import iso_now

_log = logging.getLogger(__name__)

DEFAULT_SUPPORT_CONTACT = "support@cu-bems.com"


def success_response(
    data: dict | list | None = None,
    status: int = 200,
    *,
    warnings: list[str] | None = None,
    headers: dict[str, str] | None = None,
) -> Response:
    payload: dict[str, Any] = {"success": True, "data": data}
    if warnings:
        payload["warnings"] = list(warnings)
    response = jsonify(payload)
    response.status_code = status
    if headers:
        response.headers.update(headers)
    return response


def error_response(
    error: str,
    status: int = 500,
    *,
    message: str | None = None,
    details: dict | None = None,
) -> Response:
    """Build the ``{success: false, error, message, ...}`` error body.

    ``details`` are merged into the top level of the body, matching what the
    pattern endpoints document (``validation_errors``, ``suggestions``,
    ``upgrade_required``, ``retry_after`` ...).
    """
    payload: dict[str, Any] = {"success": False, "error": error}
    if message:
        payload["message"] = message
    if details:
        payload.update(details)
    response = jsonify(payload)
    response.status_code = status
    return response


def _support_contact() -> str:
    if has_app_context():
        return current_app.config.get("SUPPORT_CONTACT", DEFAULT_SUPPORT_CONTACT)
    return DEFAULT_SUPPORT_CONTACT


def safe_error(
    exc: BaseException,
    status: int = 500,
    *,
    error: str = "Internal error",
    message: str = "An unexpected error occurred",
    error_prefix: str = "DET",
    suggestions: list[str] | None = None,
    context: str = "",
) -> Response:
    """Return a generic error response while logging the real exception.

    The exception text is logged server-side only; the caller gets a
    trackable ``error_id`` and the support contact instead.
    """
    tracking_id = new_error_id(error_prefix)
    _log.error("API error [%s] %s (%s): %s", status, context, tracking_id, exc, exc_info=exc)
    details: dict[str, Any] = {
        "error_id": tracking_id,
        "timestamp": iso_now(),
        "support_contact": _support_contact(),
    }
    if suggestions:
        details["suggestions"] = list(suggestions)
    return error_response(error, status, message=message, details=details)


# ---------------------------------------------------------------------------
# Route decorator
# ---------------------------------------------------------------------------


def safe_route(
    error_message: str = "Request failed",
    *,
    generic_message: str = "An unexpected error occurred",
    error_prefix: str = "DET",
    suggestions: list[str] | None = None,
) -> Callable:
    """Decorator that wraps a Flask route handler with standardized error handling.

    Catches :class:`~cubems.domain.exceptions.CuBemsError` subclasses and maps
    them to the correct HTTP status via ``exc.http_status``. Any other
    ``Exception`` is logged and returns a generic 500 carrying an
    ``<error_prefix>_<ts>_<rand>`` error id.

    Usage::

        @patterns_api.post("/detect")
        @safe_route("Pattern detection failed", error_prefix="DET")
        def detect_patterns():
            ...
    """
    from cubems.domain.exceptions import CuBemsError

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return fn(*args, **kwargs)
            except CuBemsError as exc:
                return domain_error_response(
                    exc,
                    error_message=error_message,
                    generic_message=generic_message,
                    error_prefix=error_prefix,
                    suggestions=suggestions,
                )
            except MemoryError as exc:
                _log.error("Out of memory during %s", error_message, exc_info=exc)
                return error_response(
                    "Resource limit exceeded",
                    413,
                    message="The analysis request requires too many resources",
                    details={"retry_after": 60},
                )
            except Exception as exc:
                return safe_error(
                    exc,
                    500,
                    error=error_message,
                    message=generic_message,
                    error_prefix=error_prefix,
                    suggestions=suggestions,
                    context=error_message,
                )

        return wrapper

    return decorator


def domain_error_response(
    exc: Any,
    *,
    error_message: str = "Request failed",
    generic_message: str = "An unexpected error occurred",
    error_prefix: str = "DET",
    suggestions: list[str] | None = None,
) -> Response:
    """Render a ``CuBemsError``; non-public 5xx errors are masked."""
    status = exc.http_status
    if not exc.is_public:
        return safe_error(
            exc,
            status,
            error=error_message,
            message=generic_message,
            error_prefix=error_prefix,
            suggestions=suggestions,
            context=type(exc).__name__,
        )
    if status >= 500:
        _log.error("API error [%s] %s: %s", status, exc.error, exc)
    return error_response(exc.error, status, message=str(exc) or None, details=exc.body_fields())
