from __future__ import annotations

import atexit
import logging
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from cubems.blueprints.api.health import health_api
from cubems.blueprints.api.patterns import patterns_api
from cubems.config import load_config, setup_logging
from cubems.middleware.rate_limiting import init_rate_limit_headers


def create_app(config_overrides: dict[str, Any] | None = None) -> Flask:
    config = load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            setattr(config, key.lower(), value)

    setup_logging(debug=config.DEBUG, log_dir=config.log_dir)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    from cubems.services.container import ServiceContainer

    container = ServiceContainer.build(config)
    flask_app.config["CONTAINER"] = container
    flask_app.teardown_appcontext(container.database.close_db)
    atexit.register(container.shutdown)

    init_rate_limit_headers(flask_app)

    # Global JSON error handler for /api/ routes; domain exceptions carry
    # their own ``http_status``.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            raise exc
        from cubems.domain.exceptions import CuBemsError
        from cubems.utils.http import domain_error_response, error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, error="Request failed", context="http-exception")
            return error_response(exc.name, status, message=exc.description)

        if isinstance(exc, CuBemsError):
            return domain_error_response(exc)

        return safe_error(exc, 500, error="Request failed", context="unhandled")

    @flask_app.errorhandler(413)
    def _handle_too_large(_exc):
        from cubems.utils.http import error_response

        return error_response("Request payload too large", 413, message="Request body exceeds the upload limit")

    flask_app.register_blueprint(patterns_api, url_prefix="/api/patterns")
    flask_app.register_blueprint(health_api, url_prefix="/api/health")

    for bp_name in flask_app.blueprints:
        logging.info(" Registered blueprint: %s", bp_name)

    logger = logging.getLogger(__name__)
    logger.info("CU-BEMS pattern analytics initialized (env=%s).", config.environment)

    return flask_app


__all__ = ["create_app"]
