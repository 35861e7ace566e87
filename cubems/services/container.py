from __future__ import annotations

import logging
from dataclasses import dataclass

from cubems.config import AppConfig
from cubems.middleware.rate_limiting import RateLimitConfig, RateLimiter
from cubems.services.analytics.catalog import MaintenanceCatalog, load_catalog
from cubems.services.analytics.pattern_cache import PatternDetectionCache
from cubems.services.analytics.recommendation_engine import RecommendationEngine
from cubems.services.application.acknowledgment_service import AcknowledgmentService
from cubems.services.application.pattern_detection_service import PatternDetectionService
from cubems.utils.cache import CacheRegistry, HitCountTTLCache
from infrastructure.database.repositories.detected_patterns import DetectedPatternRepository
from infrastructure.database.repositories.sensor_readings import SensorReadingRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)

PATTERN_CACHE_NAME = "pattern_detection"


@dataclass
class ServiceContainer:
    """Aggregate and manage core backend services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    catalog: MaintenanceCatalog
    reading_repo: SensorReadingRepository
    pattern_repo: DetectedPatternRepository
    cache_backend: HitCountTTLCache
    pattern_cache: PatternDetectionCache
    recommendation_engine: RecommendationEngine
    detection_service: PatternDetectionService
    acknowledgment_service: AcknowledgmentService
    rate_limiter: RateLimiter

    @classmethod
    def build(cls, config: AppConfig) -> "ServiceContainer":
        """Construct the service container with all dependencies."""
        logger.info("Building ServiceContainer...")

        database = SQLiteDatabaseHandler(config.database_path)
        database.create_tables()

        catalog = load_catalog(config.catalog_path)
        reading_repo = SensorReadingRepository(database)
        pattern_repo = DetectedPatternRepository(database)

        cache_backend = HitCountTTLCache(
            max_entries=config.cache_max_entries,
            default_ttl=config.cache_ttl_seconds,
            sweep_interval=config.cache_sweep_interval_seconds,
        )
        CacheRegistry.get_instance().register(PATTERN_CACHE_NAME, cache_backend)
        pattern_cache = PatternDetectionCache(
            cache_backend, ttl_seconds=config.cache_ttl_seconds, enabled=config.cache_enabled
        )

        recommendation_engine = RecommendationEngine(catalog)
        detection_service = PatternDetectionService(
            reading_repo,
            pattern_cache,
            recommendation_engine,
            pattern_repo,
            catalog,
            config,
        )
        acknowledgment_service = AcknowledgmentService(pattern_repo)
        rate_limiter = RateLimiter(
            RateLimitConfig(enabled=config.rate_limit_enabled, window_seconds=config.rate_limit_window_seconds)
        )

        logger.info("ServiceContainer built successfully.")
        return cls(
            config=config,
            database=database,
            catalog=catalog,
            reading_repo=reading_repo,
            pattern_repo=pattern_repo,
            cache_backend=cache_backend,
            pattern_cache=pattern_cache,
            recommendation_engine=recommendation_engine,
            detection_service=detection_service,
            acknowledgment_service=acknowledgment_service,
            rate_limiter=rate_limiter,
        )

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        CacheRegistry.get_instance().unregister(PATTERN_CACHE_NAME)
        self.database.close_db()
