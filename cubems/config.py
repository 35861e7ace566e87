"""
Configuration for the CU-BEMS Pattern Analytics Service
=======================================================
Runtime settings read from ``CUBEMS_*`` environment variables, plus the
logging setup shared by the server and the command-line tools.
"""

import logging
import os
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from typing import Any

from cubems.enums import AlgorithmType, OperationalCriticality, SubscriptionTier

_DEFAULT_SECRET_KEY = "CuBemsDevSecretKey"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("CUBEMS_ENV", "development"))
    secret_key: str = field(default_factory=lambda: os.getenv("CUBEMS_SECRET_KEY", _DEFAULT_SECRET_KEY))
    database_path: str = field(default_factory=lambda: os.getenv("CUBEMS_DATABASE_PATH", "database/cubems.db"))
    catalog_path: str | None = field(default_factory=lambda: os.getenv("CUBEMS_CATALOG_PATH"))

    DEBUG: bool = field(default_factory=lambda: _env_bool("CUBEMS_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("CUBEMS_LOG_LEVEL", "INFO"))
    log_dir: str = field(default_factory=lambda: os.getenv("CUBEMS_LOG_DIR", "logs"))

    # Pattern cache
    cache_enabled: bool = field(default_factory=lambda: _env_bool("CUBEMS_CACHE_ENABLED", True))
    cache_max_entries: int = field(default_factory=lambda: _env_int("CUBEMS_CACHE_MAX_ENTRIES", 1000))
    cache_ttl_seconds: int = field(default_factory=lambda: _env_int("CUBEMS_CACHE_TTL_SECONDS", 300))
    cache_sweep_interval_seconds: int = field(default_factory=lambda: _env_int("CUBEMS_CACHE_SWEEP_SECONDS", 300))

    # Detection
    detector_workers: int = field(default_factory=lambda: _env_int("CUBEMS_DETECTOR_WORKERS", 4))
    max_analysis_points: int = field(default_factory=lambda: _env_int("CUBEMS_MAX_ANALYSIS_POINTS", 2_000_000))
    ensemble_algorithms: tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "CUBEMS_ENSEMBLE_ALGORITHMS",
            (
                AlgorithmType.STATISTICAL_ZSCORE.value,
                AlgorithmType.MODIFIED_ZSCORE.value,
                AlgorithmType.INTERQUARTILE_RANGE.value,
            ),
        )
    )

    # Recommendations
    operational_criticality: str = field(
        default_factory=lambda: os.getenv("CUBEMS_OPERATIONAL_CRITICALITY", OperationalCriticality.HIGH.value)
    )
    support_contact: str = field(default_factory=lambda: os.getenv("CUBEMS_SUPPORT_CONTACT", "support@cu-bems.com"))

    # Rate Limiting (requests per window, by subscription tier)
    rate_limit_enabled: bool = field(default_factory=lambda: _env_bool("CUBEMS_RATE_LIMIT_ENABLED", True))
    rate_limit_window_seconds: int = field(default_factory=lambda: _env_int("CUBEMS_RATE_LIMIT_WINDOW", 3600))
    rate_limit_free: int = field(default_factory=lambda: _env_int("CUBEMS_RATE_LIMIT_FREE", 100))
    rate_limit_professional: int = field(default_factory=lambda: _env_int("CUBEMS_RATE_LIMIT_PROFESSIONAL", 10_000))

    max_upload_mb: int = field(default_factory=lambda: _env_int("CUBEMS_MAX_UPLOAD_MB", 16))

    def __post_init__(self) -> None:
        if self.environment == "production" and self.secret_key == _DEFAULT_SECRET_KEY:
            raise RuntimeError(
                "SECURITY ERROR: Cannot use default secret key in production!\n"
                "Set CUBEMS_SECRET_KEY environment variable to a secure random value."
            )
        try:
            OperationalCriticality(self.operational_criticality)
        except ValueError:
            raise ValueError(
                f"CUBEMS_OPERATIONAL_CRITICALITY must be one of low, medium, high; got {self.operational_criticality!r}"
            ) from None
        for algorithm in self.ensemble_algorithms:
            try:
                AlgorithmType(algorithm)
            except ValueError:
                raise ValueError(f"Unknown ensemble algorithm {algorithm!r} in CUBEMS_ENSEMBLE_ALGORITHMS") from None

    def rate_limit_for(self, tier: SubscriptionTier) -> int:
        if tier is SubscriptionTier.PROFESSIONAL:
            return self.rate_limit_professional
        return self.rate_limit_free

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "DATABASE_PATH": self.database_path,
            "DEBUG": self.DEBUG,
            "MAX_CONTENT_LENGTH": self.max_upload_mb * 1024 * 1024,
            "SESSION_COOKIE_HTTPONLY": True,
            "SESSION_COOKIE_SAMESITE": "Lax",
            "SESSION_COOKIE_SECURE": self.environment == "production",
            "SUPPORT_CONTACT": self.support_contact,
        }


def setup_logging(debug: bool = False, log_dir: str = "logs") -> None:
    """Setup logging configuration."""
    log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicate handlers when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "cubems_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "cubems_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "cubems_console"
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "cubems.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "cubems_file"
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"cubems_console", "cubems_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("CUBEMS_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    return AppConfig()
