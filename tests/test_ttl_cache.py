"""Tests for the TTL response cache."""

import pytest

from dashworker.application.cache import CacheEntry, TTLCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(default_ttl_seconds=30, clock=clock)


class TestTTLCache:
    def test_get_missing_key_returns_none(self, cache: TTLCache):
        assert cache.get("nope") is None

    def test_set_then_get(self, cache: TTLCache):
        cache.set("k", {"projects": []})
        assert cache.get("k") == {"projects": []}

    @pytest.mark.parametrize("elapsed", [0, 1, 29.999])
    def test_entry_readable_before_ttl(self, cache: TTLCache, clock: FakeClock, elapsed):
        cache.set("k", "v")
        clock.advance(elapsed)
        assert cache.get("k") == "v"

    @pytest.mark.parametrize("elapsed", [30, 30.001, 3600])
    def test_entry_absent_at_or_after_ttl(self, cache: TTLCache, clock: FakeClock, elapsed):
        cache.set("k", "v")
        clock.advance(elapsed)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_explicit_ttl_overrides_default(self, cache: TTLCache, clock: FakeClock):
        cache.set("short", "v", ttl_seconds=5)
        clock.advance(5)
        assert cache.get("short") is None

    def test_set_replaces_existing_entry_and_resets_expiry(
        self, cache: TTLCache, clock: FakeClock
    ):
        cache.set("k", "old")
        clock.advance(20)
        cache.set("k", "new")
        clock.advance(20)
        assert cache.get("k") == "new"

    def test_delete(self, cache: TTLCache):
        cache.set("k", "v")
        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None

    def test_clear(self, cache: TTLCache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert len(cache) == 0

    def test_purge_expired_keeps_live_entries(self, cache: TTLCache, clock: FakeClock):
        cache.set("old", 1, ttl_seconds=10)
        cache.set("live", 2)
        clock.advance(15)
        assert cache.purge_expired() == 1
        assert "live" in cache
        assert "old" not in cache

    def test_contains_respects_expiry(self, cache: TTLCache, clock: FakeClock):
        cache.set("k", "v")
        assert "k" in cache
        clock.advance(30)
        assert "k" not in cache
        assert 42 not in cache

    def test_stats_track_hits_misses_and_evictions(self, cache: TTLCache, clock: FakeClock):
        cache.set("k", "v")
        cache.get("k")
        cache.get("missing")
        clock.advance(31)
        cache.get("k")

        stats = cache.get_stats()
        assert stats["cache_hits"] == 1
        assert stats["cache_misses"] == 2
        assert stats["evictions"] == 1
        assert stats["writes"] == 1
        assert stats["entries"] == 0
        assert stats["default_ttl_seconds"] == 30

    def test_default_ttl_property(self):
        assert TTLCache(default_ttl_seconds=12).default_ttl == 12


class TestCacheEntry:
    def test_is_expired_boundary(self):
        entry = CacheEntry(key="k", value=None, expires_at=100.0)
        assert entry.is_expired(99.9) is False
        assert entry.is_expired(100.0) is True
