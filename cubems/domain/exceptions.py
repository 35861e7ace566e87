"""Centralized exception hierarchy for the pattern analytics service.

All domain and service exceptions inherit from :class:`CuBemsError` so that
route handlers can catch a single base class, yet still match on specific
subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``cubems/utils/http.safe_route``) maps
these to HTTP status codes and the ``{success: false, error, message}`` body.

Hierarchy
---------
::

    CuBemsError (base, maps to 500)
    ├── ValidationError          (400, bad input from caller)
    │   └── InvalidJsonError     (400, unparseable body)
    ├── AuthenticationError      (401, no session)
    ├── TierLimitError           (403, subscription limit, upgrade_required)
    ├── NotFoundError            (404, entity does not exist)
    │   └── NoDataError          (404, no readings for sensors/window)
    ├── ConflictError            (409, state conflict)
    ├── ResourceLimitError       (413, request too expensive, retry_after)
    ├── RateLimitExceeded        (429, too many requests)
    ├── ServiceError             (500, business-logic failure)
    │   ├── DetectionFailedError (500, detector reported success=False)
    │   └── RepositoryError      (500, database / persistence)
    └── ConfigurationError       (500, missing / invalid config)
"""

from __future__ import annotations

from typing import Any


class CuBemsError(Exception):
    """Base exception for all application errors.

    Parameters
    ----------
    message:
        Human-readable description. For 4xx classes it is written for the
        caller and returned as ``message``; for 5xx classes it is only logged.
    detail:
        Optional machine-readable context merged into the error body.
    error:
        Overrides the class-level short error label for this instance.
    """

    http_status: int = 500
    error: str = "Internal error"
    # 5xx errors whose message and fields are safe to show the caller
    public: bool = False

    def __init__(self, message: str = "", *, detail: dict[str, Any] | None = None, error: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}
        if error is not None:
            self.error = error

    @property
    def is_public(self) -> bool:
        return self.public or self.http_status < 500

    def body_fields(self) -> dict[str, Any]:
        """Extra top-level fields for the JSON error body."""
        return dict(self.detail)


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(CuBemsError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400
    error: str = "Invalid request data"


class InvalidJsonError(ValidationError):
    """Request body could not be parsed as JSON."""

    error: str = "Invalid JSON"


class AuthenticationError(CuBemsError):
    http_status: int = 401
    error: str = "Authentication required"


class TierLimitError(CuBemsError):
    """Request exceeds what the caller's subscription tier permits (HTTP 403)."""

    http_status: int = 403
    error: str = "Subscription limit exceeded"

    def body_fields(self) -> dict[str, Any]:
        return {**self.detail, "upgrade_required": True}


class NotFoundError(CuBemsError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404
    error: str = "Not found"


class NoDataError(NotFoundError):
    """No sensor readings exist for the requested sensors and window."""

    error: str = "No data available"


class ConflictError(CuBemsError):
    """Operation conflicts with existing state (HTTP 409)."""

    http_status: int = 409
    error: str = "Conflict"


class ResourceLimitError(CuBemsError):
    """Analysis would exceed memory or time limits (HTTP 413)."""

    http_status: int = 413
    error: str = "Resource limit exceeded"

    def __init__(self, message: str = "", *, retry_after: int = 60, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message, detail=detail)
        self.retry_after = retry_after

    def body_fields(self) -> dict[str, Any]:
        return {**self.detail, "retry_after": self.retry_after}


class RateLimitExceeded(CuBemsError):
    http_status: int = 429
    error: str = "Rate limit exceeded"


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(CuBemsError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500
    error: str = "Service error"


class DetectionFailedError(ServiceError):
    """The anomaly detector returned ``success=False``.

    Unlike other 5xx errors the detector's reason is safe to expose: it is
    surfaced to the caller as ``details`` together with a ``PD_`` error id.
    """

    error: str = "Pattern detection failed"
    public: bool = True

    def __init__(self, details: str, *, error_id: str, suggestions: list[str] | None = None) -> None:
        super().__init__("Failed to process sensor data for pattern detection")
        self.details = details
        self.error_id = error_id
        self.suggestions = list(suggestions or [])

    def body_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"details": self.details, "error_id": self.error_id}
        if self.suggestions:
            fields["suggestions"] = self.suggestions
        return fields


class RepositoryError(ServiceError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500


class ConfigurationError(CuBemsError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500
    error: str = "Configuration error"
