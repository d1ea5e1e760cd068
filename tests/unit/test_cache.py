"""
Unit tests for the TTL cache used by the geocoder.
"""

import pytest

from utils.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTTLCache:
    """Test cases for TTLCache expiry, eviction and get_or_set."""

    def test_get_set(self):
        cache = TTLCache(ttl_seconds=10)
        cache.set("a", 1)

        assert cache.get("a") == 1
        assert "a" in cache
        assert cache.get("missing", "default") == "default"

    def test_entries_expire(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)

        clock.now = 10.0

        assert cache.get("a") is None
        assert len(cache) == 0

    def test_oldest_entry_evicted_when_full(self):
        cache = TTLCache(ttl_seconds=60, max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert "a" not in cache
        assert cache.get("c") == 3
        assert len(cache) == 2

    def test_get_or_set_computes_once(self):
        cache = TTLCache(ttl_seconds=60)
        calls = []

        def factory():
            calls.append(1)
            return "value"

        assert cache.get_or_set("k", factory) == "value"
        assert cache.get_or_set("k", factory) == "value"
        assert len(calls) == 1

    def test_get_or_set_does_not_cache_none(self):
        cache = TTLCache(ttl_seconds=60)

        cache.get_or_set("k", lambda: None)

        assert "k" not in cache

    def test_invalidate_and_clear(self):
        cache = TTLCache(ttl_seconds=60)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        assert "a" not in cache
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"ttl_seconds": 1, "max_entries": 0}])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            TTLCache(**kwargs)
