"""Tests for the per-instance TTL cache."""

import pytest

from ddi_miner.cache import TTLCache


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_get_and_set():
    cache = TTLCache(default_ttl=60)
    assert cache.get("k") is None
    cache.set("k", [1, 2])
    assert cache.get("k") == [1, 2]
    assert "k" in cache
    assert len(cache) == 1


def test_entries_expire():
    clock = Clock()
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)
    clock.now = 10
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.stats().expirations == 1


def test_cleanup_expired():
    clock = Clock()
    cache = TTLCache(default_ttl=5, clock=clock)
    for key in "abc":
        cache.set(key, key)
    cache.set("d", "d", ttl=50)
    clock.now = 6
    assert cache.cleanup_expired() == 3
    assert len(cache) == 1


def test_evicts_oldest_when_full():
    clock = Clock()
    cache = TTLCache(default_ttl=100, max_size=2, clock=clock)
    cache.set("first", 1)
    clock.now = 1
    cache.set("second", 2)
    clock.now = 2
    cache.set("third", 3)
    assert "first" not in cache
    assert cache.get("second") == 2
    assert cache.get("third") == 3
    assert cache.stats().evictions == 1


def test_overwrite_does_not_evict():
    cache = TTLCache(max_size=1)
    cache.set("k", 1)
    cache.set("k", 2)
    assert cache.get("k") == 2
    assert cache.stats().evictions == 0


def test_stats_hit_rate():
    cache = TTLCache()
    cache.set("k", "v")
    cache.get("k")
    cache.get("k")
    cache.get("missing")
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.total_requests) == (2, 1, 3)
    assert stats.hit_rate == pytest.approx(66.67)
    assert stats.to_dict()["size"] == 1


def test_clear_keeps_counters():
    cache = TTLCache()
    cache.set("k", "v")
    cache.get("k")
    cache.clear()
    assert len(cache) == 0
    assert cache.stats().hits == 1


def test_delete():
    cache = TTLCache()
    cache.set("k", "v")
    assert cache.delete("k") is True
    assert cache.delete("k") is False


def test_rejects_zero_size():
    with pytest.raises(ValueError):
        TTLCache(max_size=0)
