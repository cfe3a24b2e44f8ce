"""Tests for the TTL cache."""

import asyncio

from conduit.core.cache import TTLCache, generate_cache_key


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    async def test_entry_expires_after_ttl(self):
        cache = TTLCache()
        cache.set("k", "v", ttl=0.05)
        assert cache.get("k") == "v"
        await asyncio.sleep(0.06)
        assert cache.get("k") is None

    def test_expired_entry_removed_on_read(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=10)
        clock.now += 10.5
        assert len(cache) == 1
        assert cache.has("k") is False
        assert len(cache) == 0

    def test_entry_live_at_exact_expiry(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=10)
        clock.now += 10
        assert cache.get("k") == "v"

    def test_default_ttl_applies(self):
        clock = FakeClock()
        cache = TTLCache(default_ttl=5, clock=clock)
        cache.set("k", 1)
        clock.now += 4
        assert cache.get("k") == 1
        clock.now += 2
        assert cache.get("k", "missing") == "missing"

    def test_set_overwrites_and_refreshes(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", "old", ttl=5)
        clock.now += 4
        cache.set("k", "new", ttl=5)
        clock.now += 4
        assert cache.get("k") == "new"

    def test_delete_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_clean_expired_counts_removed(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.now += 5
        assert cache.clean_expired() == 1
        assert cache.get("long") == 2

    def test_stats(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", 1, ttl=10)
        clock.now += 3
        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["entries"][0] == {"key": "k", "age": 3, "expires_in": 7}


class TestCacheKey:
    def test_key_independent_of_dict_order(self):
        a = generate_cache_key("tool", "calc", {"x": 1, "y": 2})
        b = generate_cache_key("tool", "calc", {"y": 2, "x": 1})
        assert a == b

    def test_key_differs_by_args(self):
        a = generate_cache_key("tool", "calc", {"expression": "1+1"})
        b = generate_cache_key("tool", "calc", {"expression": "1+2"})
        assert a != b
        assert a.startswith("tool:")
