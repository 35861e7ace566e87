"""
Blueprint Common Utilities
==========================

Shared helper functions for the API blueprints.

Usage:
    from cubems.blueprints.api._common import get_container, get_json, parse_body
"""

from __future__ import annotations

import logging
from typing import TypeVar

from flask import current_app, request
from pydantic import BaseModel, ValidationError as PydanticValidationError

from cubems.domain.exceptions import InvalidJsonError, ValidationError
from cubems.schemas.patterns import validation_errors

logger = logging.getLogger("api._common")

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_json() -> dict:
    """
    Parse the request body as a JSON object.

    Raises:
        InvalidJsonError: the body is missing, malformed, or not an object
    """
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        raise InvalidJsonError("Request body must be valid JSON")
    return body


def parse_body(model: type[ModelT], suggestions: list[str], message: str) -> ModelT:
    """Validate the JSON body against ``model``; failures become a 400 with field errors."""
    body = get_json()
    try:
        return model.model_validate(body)
    except PydanticValidationError as ve:
        logger.info("Rejected %s payload: %s", model.__name__, ve.error_count())
        raise ValidationError(
            message,
            detail={"validation_errors": validation_errors(ve), "suggestions": suggestions},
        ) from None
