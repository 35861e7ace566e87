"""
Shared test fixtures for the CU-BEMS pattern analytics test suite.

Provides:
- In-memory SQLite database with all tables created
- Repository instances wired to the test database
- The maintenance catalog and a frozen clock
- Reading and pattern factories
- A Flask app/client pair backed by a temporary database

Usage:
    def test_example(reading_repo, spike_readings, now):
        reading_repo.insert_readings(spike_readings("HVAC-01", now))
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from cubems.domain.patterns import DetectedPattern, PatternDataPoint, SensorReading
from cubems.enums import PatternSeverity, PatternType
from cubems.services.analytics.catalog import load_catalog
from cubems.utils.time import to_iso
from infrastructure.database.repositories.detected_patterns import DetectedPatternRepository
from infrastructure.database.repositories.sensor_readings import SensorReadingRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("cubems").setLevel(logging.WARNING)


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database, no cross-test contamination.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler


@pytest.fixture()
def reading_repo(db_handler):
    return SensorReadingRepository(db_handler)


@pytest.fixture()
def pattern_repo(db_handler):
    return DetectedPatternRepository(db_handler)


# ========================== Domain Fixtures ================================


@pytest.fixture(scope="session")
def catalog():
    return load_catalog()


@pytest.fixture()
def now():
    return datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def spike_readings():
    """Factory for a flat series (99/101 alternating) with a single spike.

    40 readings ten minutes apart ending ten minutes before ``end``; the
    reading at index 35 carries ``spike_value``.
    """

    def _make(
        sensor_id: str,
        end: datetime,
        *,
        count: int = 40,
        equipment_type: str = "HVAC",
        spike_value: float | None = 200.0,
        step: timedelta = timedelta(minutes=10),
    ) -> list[SensorReading]:
        readings = [
            SensorReading(
                timestamp=end - step * (count - i),
                sensor_id=sensor_id,
                equipment_type=equipment_type,
                value=99.0 if i % 2 == 0 else 101.0,
            )
            for i in range(count)
        ]
        if spike_value is not None and count > 5:
            readings[count - 5] = replace(readings[count - 5], value=spike_value)
        return readings

    return _make


@pytest.fixture()
def make_pattern(now):
    """Factory for stored-pattern fixtures."""

    def _make(
        pattern_id: str = "pattern_000001",
        *,
        sensor_id: str = "HVAC-01",
        equipment_type: str = "HVAC",
        floor_number: int = 2,
        pattern_type: PatternType = PatternType.ANOMALY,
        severity: PatternSeverity = PatternSeverity.CRITICAL,
        confidence_score: int = 95,
    ) -> DetectedPattern:
        timestamp = to_iso(now - timedelta(hours=1))
        return DetectedPattern(
            id=pattern_id,
            timestamp=timestamp,
            sensor_id=sensor_id,
            equipment_type=equipment_type,
            floor_number=floor_number,
            pattern_type=pattern_type,
            severity=severity,
            confidence_score=confidence_score,
            description=f"{severity.value.upper()} anomaly detected in {equipment_type} equipment.",
            data_points=(
                PatternDataPoint(
                    timestamp=timestamp,
                    value=200.0,
                    expected_value=102.5,
                    deviation=97.5,
                    is_anomaly=True,
                    severity_score=6.15,
                ),
            ),
            created_at=to_iso(now),
            metadata={"detection_algorithm": "statistical_zscore"},
        )

    return _make


# ========================== Flask Fixtures =================================


@pytest.fixture()
def app(tmp_path):
    from cubems import create_app

    app = create_app({"database_path": str(tmp_path / "test.db"), "log_dir": str(tmp_path / "logs")})
    app.config["TESTING"] = True
    yield app
    app.config["CONTAINER"].shutdown()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def container(app):
    return app.config["CONTAINER"]


@pytest.fixture()
def login(client):
    """Put a user (and subscription tier) into the test client's session."""

    def _login(user: str = "operator", tier: str = "free") -> None:
        with client.session_transaction() as sess:
            sess["user"] = user
            sess["subscription_tier"] = tier

    return _login
