"""
Sensor Reading Import
=====================

Loads sensor exports (CSV, one reading per row) into the readings store and
drops any cached analysis for the sensors that received new data.

Expected columns: ``timestamp``, ``sensor_id``, ``equipment_type``, ``value``.
``equipment_type`` may be omitted when ``--equipment-type`` is given. It must
name one of the EquipmentType values exactly (``HVAC``, ``Lighting``, ``Power``,
``Water``, ``Security``); rows with any other type are skipped.
Timestamps without an offset are read as UTC.

Usage:
    python scripts/import_readings.py readings.csv --db database/cubems.db
"""

from __future__ import annotations

import argparse
import csv
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from cubems.domain.patterns import SensorReading
from cubems.enums.patterns import EquipmentType
from cubems.services.analytics.pattern_cache import PatternDetectionCache
from cubems.utils.time import coerce_datetime

logger = logging.getLogger(__name__)

BATCH_SIZE = 5000


@dataclass
class ImportReport:
    rows_read: int = 0
    rows_skipped: int = 0
    rows_inserted: int = 0
    sensors: set[str] = field(default_factory=set)
    cache_entries_invalidated: int = 0


def _equipment_type(raw: str | None) -> str | None:
    try:
        return EquipmentType((raw or "").strip()).value
    except ValueError:
        return None


def parse_rows(
    rows: Iterable[dict[str, str]], *, default_equipment_type: str | None, report: ImportReport
) -> Iterator[SensorReading]:
    for line_no, row in enumerate(rows, start=2):
        report.rows_read += 1
        timestamp = coerce_datetime(row.get("timestamp"))
        sensor_id = (row.get("sensor_id") or "").strip()
        equipment_type = _equipment_type(row.get("equipment_type") or default_equipment_type)
        try:
            value = float(row.get("value", ""))
        except (TypeError, ValueError):
            value = math.nan

        if timestamp is None or not sensor_id or equipment_type is None or not math.isfinite(value):
            report.rows_skipped += 1
            logger.debug("Skipping line %s: %r", line_no, row)
            continue
        yield SensorReading(timestamp=timestamp, sensor_id=sensor_id, equipment_type=equipment_type, value=value)


def import_csv(
    csv_path: Path,
    reading_repo,
    pattern_cache: PatternDetectionCache | None = None,
    *,
    default_equipment_type: str | None = None,
) -> ImportReport:
    """Insert every valid row of ``csv_path``; duplicates (same sensor and timestamp) are ignored."""
    report = ImportReport()
    batch: list[SensorReading] = []
    with csv_path.open(newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        for reading in parse_rows(reader, default_equipment_type=default_equipment_type, report=report):
            batch.append(reading)
            report.sensors.add(reading.sensor_id)
            if len(batch) >= BATCH_SIZE:
                report.rows_inserted += reading_repo.insert_readings(batch)
                batch = []
    if batch:
        report.rows_inserted += reading_repo.insert_readings(batch)

    if pattern_cache is not None:
        for sensor_id in sorted(report.sensors):
            report.cache_entries_invalidated += pattern_cache.invalidate_sensor(sensor_id)

    logger.info(
        "Imported %s of %s rows for %s sensor(s) from %s (%s skipped)",
        report.rows_inserted,
        report.rows_read,
        len(report.sensors),
        csv_path,
        report.rows_skipped,
    )
    return report


def main(argv: Sequence[str] | None = None) -> int:
    from cubems.config import load_config, setup_logging
    from cubems.services.container import ServiceContainer

    parser = argparse.ArgumentParser(description="Import sensor readings from a CSV export.")
    parser.add_argument("csv_path", help="CSV file with timestamp,sensor_id,equipment_type,value columns")
    parser.add_argument("--db", dest="db_path", help="Path to SQLite database (default: CUBEMS_DATABASE_PATH)")
    parser.add_argument(
        "--equipment-type",
        dest="equipment_type",
        choices=[e.value for e in EquipmentType],
        help="Equipment type for rows that omit it",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    config = load_config()
    if args.db_path:
        config.database_path = args.db_path
    setup_logging(debug=args.debug, log_dir=config.log_dir)

    csv_path = Path(args.csv_path)
    if not csv_path.exists():
        print(f"CSV file not found: {csv_path}")
        return 1

    container = ServiceContainer.build(config)
    try:
        report = import_csv(
            csv_path,
            container.reading_repo,
            container.pattern_cache,
            default_equipment_type=args.equipment_type,
        )
    finally:
        container.shutdown()

    print(
        f"Inserted {report.rows_inserted} reading(s) for {len(report.sensors)} sensor(s); "
        f"skipped {report.rows_skipped} invalid row(s)."
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
