from datetime import timedelta

from cubems.domain.patterns import SensorReading
from cubems.enums import PatternSeverity, PatternType


# ---------------------------------------------------------------- readings


def test_insert_readings_ignores_duplicates(reading_repo, spike_readings, now):
    readings = spike_readings("HVAC-01", now, count=10, spike_value=None)

    assert reading_repo.insert_readings(readings) == 10
    assert reading_repo.insert_readings(readings[:3]) == 0
    assert reading_repo.count() == 10
    assert reading_repo.count("HVAC-02") == 0


def test_fetch_window_is_inclusive_and_ordered(reading_repo, now):
    readings = [
        SensorReading(now - timedelta(hours=2), "HVAC-02", "HVAC", 5.0),
        SensorReading(now - timedelta(hours=1), "HVAC-01", "HVAC", 3.0),
        SensorReading(now - timedelta(hours=2), "HVAC-01", "HVAC", 4.0),
        SensorReading(now - timedelta(hours=3), "HVAC-01", "HVAC", 9.0),
        SensorReading(now - timedelta(hours=2), "LGT-01", "Lighting", 1.0),
    ]
    reading_repo.insert_readings(readings)

    fetched = reading_repo.fetch_window(["HVAC-01", "HVAC-02"], now - timedelta(hours=2), now - timedelta(hours=1))

    assert [(r.sensor_id, r.value) for r in fetched] == [("HVAC-01", 4.0), ("HVAC-02", 5.0), ("HVAC-01", 3.0)]
    assert fetched[0].timestamp == now - timedelta(hours=2)
    assert fetched[0].timestamp.tzinfo is not None


def test_fetch_window_with_no_sensors(reading_repo, now):
    assert reading_repo.fetch_window([], now - timedelta(days=1), now) == []


# ---------------------------------------------------------------- patterns


def test_saved_pattern_round_trips(pattern_repo, make_pattern):
    pattern = make_pattern()

    assert pattern_repo.save_patterns([pattern]) == 1
    loaded = pattern_repo.get_pattern(pattern.id)

    assert loaded == pattern
    assert loaded.pattern_type is PatternType.ANOMALY
    assert loaded.severity is PatternSeverity.CRITICAL


def test_get_unknown_pattern_returns_none(pattern_repo):
    assert pattern_repo.get_pattern("pattern_missing") is None


def test_mark_acknowledged_only_once(pattern_repo, make_pattern, now):
    pattern_repo.save_patterns([make_pattern()])
    details = {"notes": "Filter replaced", "follow_up_required": False, "maintenance_priority": "high"}

    assert pattern_repo.mark_acknowledged("pattern_000001", "alice", now.isoformat(), details) is True
    assert pattern_repo.mark_acknowledged("pattern_000001", "bob", now.isoformat(), details) is False

    loaded = pattern_repo.get_pattern("pattern_000001")
    assert loaded.acknowledged is True
    assert loaded.acknowledged_by == "alice"
    assert pattern_repo.count_acknowledgments() == 1


def test_mark_acknowledged_unknown_pattern(pattern_repo, now):
    assert pattern_repo.mark_acknowledged("pattern_missing", "alice", now.isoformat(), {}) is False
    assert pattern_repo.count_acknowledgments() == 0


def test_resaving_keeps_acknowledgment(pattern_repo, make_pattern, now):
    pattern = make_pattern()
    pattern_repo.save_patterns([pattern])
    pattern_repo.mark_acknowledged(pattern.id, "alice", now.isoformat(), {})

    pattern_repo.save_patterns([pattern])

    assert pattern_repo.get_pattern(pattern.id).acknowledged is True


def test_list_acknowledgments_filters_and_pages(pattern_repo, make_pattern, now):
    pattern_repo.save_patterns([make_pattern(f"pattern_00000{i}") for i in range(1, 4)])
    for i, user in enumerate(["alice", "bob", "alice"], start=1):
        at = (now + timedelta(minutes=i)).isoformat()
        pattern_repo.mark_acknowledged(f"pattern_00000{i}", user, at, {"follow_up_required": i == 3})

    newest_first = pattern_repo.list_acknowledgments()
    assert [row["pattern_id"] for row in newest_first] == ["pattern_000003", "pattern_000002", "pattern_000001"]
    assert newest_first[0]["follow_up_required"] is True
    assert newest_first[0]["maintenance_priority"] == "medium"

    alice = pattern_repo.list_acknowledgments(acknowledged_by="alice", limit=1, offset=1)
    assert [row["pattern_id"] for row in alice] == ["pattern_000001"]
    assert pattern_repo.count_acknowledgments(acknowledged_by="alice") == 2
    assert pattern_repo.count_acknowledgments(pattern_id="pattern_000002") == 1
