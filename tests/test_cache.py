"""
Tests for the read cache: TTL expiry, size bound and key construction.
"""
from citas.core.cache import NullCache, TTLCache, cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTTLCache:
    def test_hit_before_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=300, clock=clock)
        cache.set("k", {"v": 1})
        clock.now += 299
        assert cache.get("k") == {"v": 1}

    def test_miss_after_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=300, clock=clock)
        cache.set("k", 1)
        clock.now += 301
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_refreshes_timestamp(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", 1)
        clock.now += 8
        cache.set("k", 2)
        clock.now += 8
        assert cache.get("k") == 2

    def test_oldest_entry_evicted(self):
        cache = TTLCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.clear()
        assert cache.get("a") is None

    def test_null_cache_never_stores(self):
        cache = NullCache()
        cache.set("a", 1)
        assert cache.get("a") is None


class TestCacheKey:
    def test_list_order_does_not_matter(self):
        assert cache_key("p", years=[2025, 2024]) == cache_key("p", years=[2024, 2025])

    def test_none_dropped(self):
        assert cache_key("p", years=[2025], stores=None) == "p:years=2025"

    def test_param_order_does_not_matter(self):
        assert cache_key("p", a=1, b=2) == cache_key("p", b=2, a=1) == "p:a=1:b=2"

    def test_namespaces_differ(self):
        assert cache_key("patterns", years=[2025]) != cache_key("insights", years=[2025])
