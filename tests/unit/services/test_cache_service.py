"""
Unit tests for the in-process TTL cache.
"""

import re
import threading
from unittest.mock import Mock

import pytest

from src.services.cache_service import DEFAULT_TTLS, CacheEntry, CacheKeys, CacheService


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheService(max_size=3, clock=clock)


class TestCacheKeys:
    """Test cache key helpers."""

    def test_fixed_keys(self):
        assert CacheKeys.ALL_NAPS == "naps:all"
        assert CacheKeys.PENDING_NAPS == "naps:pending"
        assert CacheKeys.HEALTH_STATUS == "health:status"

    def test_nap_by_id(self):
        assert CacheKeys.nap_by_id("NAP_1") == "nap:NAP_1"

    def test_user_naps(self):
        assert CacheKeys.user_naps("u1") == "naps:user:u1"

    def test_single_nap_pattern_matches_only_single_naps(self):
        pattern = re.compile(CacheKeys.SINGLE_NAP_PATTERN)
        assert pattern.search("nap:NAP_1")
        assert not pattern.search("naps:all")
        assert not pattern.search("naps:pending")


class TestCacheEntry:
    def test_expiry_boundary(self):
        entry = CacheEntry(key="k", data=1, stored_at=100.0, ttl=10.0)

        assert not entry.is_expired(110.0)
        assert entry.is_expired(110.001)
        assert entry.age(105.0) == 5.0


class TestCacheServiceInit:
    """Test cache construction."""

    def test_defaults(self):
        cache = CacheService()

        assert cache.max_size == 1000
        assert cache.ttl_policy == DEFAULT_TTLS
        assert cache.default_ttl == DEFAULT_TTLS["naps_all"]

    def test_default_ttl_order(self):
        assert DEFAULT_TTLS["naps_all"] > DEFAULT_TTLS["nap_single"]
        assert DEFAULT_TTLS["nap_single"] > DEFAULT_TTLS["naps_pending"]
        assert DEFAULT_TTLS["naps_pending"] > DEFAULT_TTLS["health_status"]

    def test_ttl_policy_merges_over_defaults(self):
        cache = CacheService(ttl_policy={"naps_all": 42.0})

        assert cache.get_ttl("naps_all") == 42.0
        assert cache.get_ttl("health_status") == DEFAULT_TTLS["health_status"]

    def test_invalid_max_size(self):
        with pytest.raises(ValueError, match="max_size"):
            CacheService(max_size=0)

    def test_invalid_policy_ttl(self):
        with pytest.raises(ValueError, match="nap_single"):
            CacheService(ttl_policy={"nap_single": 0})

    def test_invalid_default_ttl(self):
        with pytest.raises(ValueError, match="default_ttl"):
            CacheService(default_ttl=-1)

    def test_get_ttl_unknown_class(self, cache):
        with pytest.raises(ValueError, match="Unknown cache data class"):
            cache.get_ttl("naps_by_color")


class TestCacheServiceGetSet:
    """Test reads, writes and expiry."""

    def test_get_missing_returns_default(self, cache):
        assert cache.get("missing") is None
        assert cache.get("missing", default="fallback") == "fallback"

    def test_set_and_get(self, cache):
        cache.set("k", {"id": "NAP_1"}, ttl=10)

        assert cache.get("k") == {"id": "NAP_1"}

    def test_value_stored_by_reference(self, cache):
        value = ["NAP_1"]
        cache.set("k", value, ttl=10)

        assert cache.get("k") is value

    def test_valid_just_before_ttl(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(9.999)

        assert cache.get("k") == "v"

    def test_valid_exactly_at_ttl(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(10)

        assert cache.get("k") == "v"
        assert cache.get_entry_info("k")["expired"] is False

    def test_expired_just_after_ttl(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(10.001)

        assert cache.get("k") is None
        assert len(cache) == 0

    def test_expired_read_counts_as_miss_and_delete(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(11)
        cache.get("k")

        stats = cache.get_stats()
        assert stats["misses"] == 1
        assert stats["deletes"] == 1
        assert stats["hits"] == 0

    def test_set_uses_default_ttl(self, clock):
        cache = CacheService(default_ttl=5, clock=clock)
        cache.set("k", "v")
        clock.advance(6)

        assert cache.get("k") is None

    def test_set_rejects_non_positive_ttl(self, cache):
        with pytest.raises(ValueError, match="ttl must be positive"):
            cache.set("k", "v", ttl=0)

    def test_overwrite_refreshes_timestamp(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(8)
        cache.set("k", "new", ttl=10)
        clock.advance(8)

        assert cache.get("k") == "new"

    def test_cached_none_is_a_hit(self, cache):
        cache.set("k", None, ttl=10)

        assert "k" in cache
        assert cache.get("k", default="fallback") is None
        assert cache.get_stats()["hits"] == 1

    def test_contains_respects_expiry(self, cache, clock):
        cache.set("k", "v", ttl=10)
        assert "k" in cache

        clock.advance(10.001)
        assert "k" not in cache


class TestCacheServiceEviction:
    """Test insertion-order eviction."""

    def test_evicts_oldest_inserted_when_full(self, cache):
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=10)
        cache.set("c", 3, ttl=10)
        cache.get("a")  # reads do not change eviction order
        cache.set("d", 4, ttl=10)

        assert "a" not in cache
        assert len(cache) == 3
        assert cache.get("d") == 4

    def test_overwrite_does_not_evict(self, cache):
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=10)
        cache.set("c", 3, ttl=10)
        cache.set("b", 20, ttl=10)

        assert len(cache) == 3
        assert cache.get("a") == 1
        assert cache.get("b") == 20

    def test_overwrite_keeps_position(self, cache):
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=10)
        cache.set("c", 3, ttl=10)
        cache.set("a", 10, ttl=10)
        cache.set("d", 4, ttl=10)

        assert "a" not in cache
        assert cache.get("b") == 2

    def test_size_never_exceeds_max(self, cache):
        for i in range(20):
            cache.set(f"k{i}", i, ttl=10)

        assert len(cache) == 3


class TestCacheServiceInvalidation:
    """Test delete, clear and pattern invalidation."""

    def test_delete(self, cache):
        cache.set("k", "v", ttl=10)

        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None

    def test_clear_returns_count_and_keeps_stats(self, cache):
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=10)
        cache.get("a")

        assert cache.clear() == 2
        assert len(cache) == 0
        assert cache.get_stats()["hits"] == 1

    def test_clear_expired(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=50)
        clock.advance(10)

        assert cache.clear_expired() == 1
        assert cache.get_entry_info("short") == {"exists": False}
        assert cache.get("long") == 2

    def test_invalidate_pattern_string(self, cache):
        cache.set(CacheKeys.nap_by_id("NAP_1"), 1, ttl=10)
        cache.set(CacheKeys.nap_by_id("NAP_2"), 2, ttl=10)
        cache.set(CacheKeys.ALL_NAPS, [1, 2], ttl=10)

        removed = cache.invalidate_pattern(CacheKeys.SINGLE_NAP_PATTERN)

        assert removed == 2
        assert CacheKeys.ALL_NAPS in cache

    def test_invalidate_pattern_compiled(self, cache):
        cache.set("naps:all", 1, ttl=10)
        cache.set("naps:pending", 2, ttl=10)
        cache.set("health:status", 3, ttl=10)

        assert cache.invalidate_pattern(re.compile("^naps:")) == 2
        assert "health:status" in cache

    def test_invalidate_pattern_no_match(self, cache):
        cache.set("a", 1, ttl=10)

        assert cache.invalidate_pattern("^zzz") == 0


class TestCacheServiceCached:
    """Test the get-or-compute helper."""

    def test_computes_once(self, cache):
        producer = Mock(return_value=["NAP_1"])

        assert cache.cached("k", producer, ttl=10) == ["NAP_1"]
        assert cache.cached("k", producer, ttl=10) == ["NAP_1"]
        producer.assert_called_once()

    def test_recomputes_after_expiry(self, cache, clock):
        producer = Mock(side_effect=["first", "second"])

        assert cache.cached("k", producer, ttl=10) == "first"
        clock.advance(10.001)
        assert cache.cached("k", producer, ttl=10) == "second"

    def test_caches_none(self, cache):
        producer = Mock(return_value=None)

        assert cache.cached("k", producer, ttl=10) is None
        assert cache.cached("k", producer, ttl=10) is None
        producer.assert_called_once()

    def test_producer_error_propagates_and_stores_nothing(self, cache):
        producer = Mock(side_effect=RuntimeError("sheet down"))

        with pytest.raises(RuntimeError, match="sheet down"):
            cache.cached("k", producer, ttl=10)

        assert "k" not in cache
        assert cache.get_stats()["sets"] == 0


class TestCacheServiceStats:
    """Test statistics and entry info."""

    def test_hit_rate(self, cache):
        cache.set("k", "v", ttl=10)
        cache.get("k")
        cache.get("k")
        cache.get("missing")

        stats = cache.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["sets"] == 1
        assert stats["size"] == 1
        assert stats["hit_rate"] == 66.67

    def test_hit_rate_without_reads(self, cache):
        assert cache.get_stats()["hit_rate"] == 0.0

    def test_reset_statistics(self, cache):
        cache.set("k", "v", ttl=10)
        cache.get("k")
        cache.reset_statistics()

        stats = cache.get_stats()
        assert stats["hits"] == 0
        assert stats["sets"] == 0
        assert stats["size"] == 1

    def test_entry_info_does_not_touch_stats(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(4)

        info = cache.get_entry_info("k")

        assert info == {"exists": True, "age": 4.0, "ttl": 10, "expired": False}
        assert cache.get_stats()["hits"] == 0


class TestCacheServicePeriodicCleanup:
    """Test the background sweep."""

    def test_rejects_non_positive_interval(self, cache):
        with pytest.raises(ValueError, match="interval"):
            cache.start_periodic_cleanup(interval=0)

    def test_sweep_removes_expired_entries(self, cache, clock):
        cache.set("k", "v", ttl=5)
        clock.advance(10)
        swept = threading.Event()
        original = cache.clear_expired

        def clear_and_signal():
            count = original()
            swept.set()
            return count

        cache.clear_expired = clear_and_signal
        cache.start_periodic_cleanup(interval=0.01)
        try:
            assert swept.wait(2.0)
        finally:
            cache.stop_periodic_cleanup()

        assert cache.get_entry_info("k") == {"exists": False}

    def test_start_twice_returns_same_thread(self, cache):
        first = cache.start_periodic_cleanup(interval=60)
        try:
            assert cache.start_periodic_cleanup(interval=60) is first
            assert first.daemon
            assert first.name == "cache-cleanup"
        finally:
            cache.stop_periodic_cleanup()

        assert not first.is_alive()

    def test_stop_without_start_is_noop(self, cache):
        cache.stop_periodic_cleanup()
