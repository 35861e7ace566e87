from datetime import datetime, timezone

import pytest

from cubems.domain.patterns import AnomalyDetectionConfig
from cubems.ingest import ImportReport, import_csv, main, parse_rows
from cubems.services.analytics.pattern_cache import PatternDetectionCache
from cubems.utils.cache import HitCountTTLCache
from infrastructure.database.repositories.sensor_readings import SensorReadingRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

CSV = """timestamp,sensor_id,equipment_type,value
2024-06-03T10:00:00Z,HVAC-01,HVAC,812.5
2024-06-03T10:10:00,HVAC-01,HVAC,815.0
2024-06-03T10:00:00Z,LGT-01,Lighting,120
not-a-date,HVAC-01,HVAC,800
2024-06-03T10:20:00Z,,HVAC,800
2024-06-03T10:30:00Z,HVAC-01,HVAC,nan
2024-06-03T10:40:00Z,HVAC-01,HVAC,
"""


@pytest.fixture()
def csv_path(tmp_path):
    path = tmp_path / "readings.csv"
    path.write_text(CSV, encoding="utf-8")
    return path


def test_parse_rows_skips_invalid_rows():
    report = ImportReport()
    rows = [
        {"timestamp": "2024-06-03T10:00:00", "sensor_id": "W-1", "value": "42"},
        {"timestamp": "2024-06-03T10:00:00", "sensor_id": "W-2", "value": "inf"},
    ]

    readings = list(parse_rows(rows, default_equipment_type="Water", report=report))

    assert [(r.sensor_id, r.equipment_type, r.value) for r in readings] == [("W-1", "Water", 42.0)]
    assert readings[0].timestamp == datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)
    assert report.rows_read == 2
    assert report.rows_skipped == 1


def test_parse_rows_rejects_unknown_equipment_types():
    report = ImportReport()
    rows = [
        {"timestamp": "2024-06-03T10:00:00", "sensor_id": "HVAC-01", "equipment_type": "hvac", "value": "1"},
        {"timestamp": "2024-06-03T10:00:00", "sensor_id": "BLR-01", "equipment_type": "Boiler", "value": "2"},
        {"timestamp": "2024-06-03T10:00:00", "sensor_id": "SEC-01", "equipment_type": " Security ", "value": "3"},
    ]

    readings = list(parse_rows(rows, default_equipment_type=None, report=report))

    assert [(r.sensor_id, r.equipment_type) for r in readings] == [("SEC-01", "Security")]
    assert report.rows_skipped == 2


def test_import_csv_inserts_valid_rows(csv_path, reading_repo):
    report = import_csv(csv_path, reading_repo)

    assert report.rows_read == 7
    assert report.rows_inserted == 3
    assert report.rows_skipped == 4
    assert report.sensors == {"HVAC-01", "LGT-01"}
    assert reading_repo.count("HVAC-01") == 2


def test_reimport_is_idempotent(csv_path, reading_repo):
    import_csv(csv_path, reading_repo)
    assert import_csv(csv_path, reading_repo).rows_inserted == 0


def test_import_invalidates_cached_results(csv_path, reading_repo):
    cache = PatternDetectionCache(HitCountTTLCache())
    config = AnomalyDetectionConfig()
    cache.cache_pattern_results(["HVAC-01"], "24h", config, "stale")
    cache.cache_pattern_results(["WTR-01"], "24h", config, "untouched")

    report = import_csv(csv_path, reading_repo, cache)

    assert report.cache_entries_invalidated == 1
    assert cache.get_pattern_results(["HVAC-01"], "24h", config) is None
    assert cache.get_pattern_results(["WTR-01"], "24h", config) == "untouched"


def test_main_imports_into_given_database(csv_path, tmp_path, monkeypatch):
    monkeypatch.setenv("CUBEMS_LOG_DIR", str(tmp_path / "logs"))
    db_path = tmp_path / "cli.db"

    assert main([str(csv_path), "--db", str(db_path)]) == 0

    handler = SQLiteDatabaseHandler(str(db_path))
    assert SensorReadingRepository(handler).count() == 3
    handler.close_db()


def test_main_reports_missing_file(tmp_path, monkeypatch):
    monkeypatch.setenv("CUBEMS_LOG_DIR", str(tmp_path / "logs"))
    assert main([str(tmp_path / "nope.csv"), "--db", str(tmp_path / "cli.db")]) == 1
