from cubems.utils.time import utc_now


def test_ping(client):
    response = client.get("/api/health/ping")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["status"] == "ok"
    assert data["timestamp"]


def test_cache_metrics(client):
    response = client.get("/api/health/cache")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["expired_removed"] == 0
    assert data["pattern_cache"]["total_entries"] == 0
    assert "pattern_detection" in data["caches"]
    assert {"hits", "misses", "hit_rate", "memory_usage_mb", "evictions"} <= set(data["pattern_cache"])


def test_cache_metrics_reflect_detection(client, login, container, spike_readings):
    container.reading_repo.insert_readings(spike_readings("HVAC-01", utc_now()))
    login()
    client.post("/api/patterns/detect", json={"sensor_ids": ["HVAC-01"], "time_window": "24h"})

    data = client.get("/api/health/cache").get_json()["data"]

    # one detection result plus one per-sensor statistics entry
    assert data["pattern_cache"]["total_entries"] == 2
    assert data["pattern_cache"]["misses"] == 1


def test_unknown_api_route_returns_json(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    body = response.get_json()
    assert body["success"] is False
    assert body["error"] == "Not Found"
