import pytest

from cubems.utils.cache import CacheRegistry, HitCountTTLCache


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return HitCountTTLCache(max_entries=3, default_ttl=60, sweep_interval=300, clock=clock)


def test_get_counts_hits_and_misses(cache):
    cache.set("a", 1)

    assert cache.get("a") == 1
    assert cache.get("missing") is None

    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5
    assert stats["total_entries"] == 1


def test_entries_expire_after_ttl(cache, clock):
    cache.set("a", 1)
    cache.set("b", 2, ttl=120)

    clock.advance(60)

    assert cache.get("a") is None
    assert cache.has("a") is False
    assert cache.get("b") == 2


def test_least_hit_entry_is_evicted(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    cache.get("a")
    cache.get("c")

    cache.set("d", 4)

    assert cache.has("b") is False
    assert {k for k in ("a", "c", "d") if cache.has(k)} == {"a", "c", "d"}
    assert cache.get_stats()["evictions"] == 1


def test_eviction_tie_goes_to_oldest(cache, clock):
    cache.set("a", 1)
    clock.advance(1)
    cache.set("b", 2)
    clock.advance(1)
    cache.set("c", 3)

    cache.set("d", 4)

    assert cache.has("a") is False
    assert cache.has("b") is True


def test_overwrite_does_not_evict(cache):
    for key in ("a", "b", "c"):
        cache.set(key, key)
    cache.set("a", "again")

    assert len(cache) == 3
    assert cache.get("a") == "again"


def test_cleanup_expired_reports_removed_count(cache, clock):
    cache.set("a", 1, ttl=10)
    cache.set("b", 2, ttl=10)
    cache.set("c", 3, ttl=100)
    clock.advance(10)

    assert cache.cleanup_expired() == 2
    assert len(cache) == 1


def test_set_sweeps_once_interval_has_passed(clock):
    cache = HitCountTTLCache(max_entries=10, default_ttl=5, sweep_interval=30, clock=clock)
    cache.set("old", 1)
    clock.advance(31)

    cache.set("new", 2)

    assert len(cache) == 1


def test_delete_where(cache):
    cache.set("stats:s1:24h", 1)
    cache.set("stats:s2:24h", 2)
    cache.set("pattern:abc", 3)

    assert cache.delete_where(lambda key: key.startswith("stats:")) == 2
    assert cache.has("pattern:abc")
    assert cache.delete("pattern:abc") is True
    assert cache.delete("pattern:abc") is False


def test_removal_listeners_see_every_dropped_key(cache, clock):
    removed = []
    cache.add_removal_listener(removed.extend)

    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    cache.get("b")
    cache.get("c")
    cache.set("d", 4)
    assert removed == ["a"]

    clock.advance(61)
    assert cache.get("b") is None
    assert removed == ["a", "b"]

    cache.cleanup_expired()
    assert sorted(removed) == ["a", "b", "c", "d"]

    cache.set("e", 5)
    cache.delete("e")
    cache.delete("missing")
    assert removed[-1] == "e"
    assert len(removed) == 5


def test_average_age_uses_clock(cache, clock):
    cache.set("a", 1)
    clock.advance(10)
    assert cache.get_stats()["average_age"] == 10.0


def test_registry_reports_registered_caches(clock):
    registry = CacheRegistry()
    first = HitCountTTLCache(clock=clock)
    second = HitCountTTLCache(clock=clock)
    first.set("x", 1)

    registry.register("patterns", first)
    registry.register("patterns", second)
    registry.register("other", first)

    stats = registry.get_all_stats()
    assert set(stats) == {"patterns", "other"}
    assert stats["patterns"]["total_entries"] == 0
    assert stats["other"]["total_entries"] == 1

    registry.unregister("other")
    assert set(registry.get_all_stats()) == {"patterns"}
    assert registry.cleanup_all() == {"patterns": 0}


def test_registry_is_a_singleton():
    assert CacheRegistry.get_instance() is CacheRegistry.get_instance()
