"""
Cache Store Tests

Key fingerprints, TTL boundaries, corrupt entries, quota failures and
prefix versioning.
"""

from __future__ import annotations

from market_breadth.cache import (
    TTL_BREADTH_FRESH,
    TTL_BREADTH_HISTORY,
    TTL_INDEX,
    CacheStore,
    MemoryBackend,
    RedisBackend,
    fingerprint,
)


# ════════════════════════════════════════════════
#  KEYS
# ════════════════════════════════════════════════


class TestCacheKeys:

    def test_fingerprint_ignores_key_order(self):
        a = fingerprint({"floor": "hose", "min_ad": 2, "breadthUrl": "u"})
        b = fingerprint({"breadthUrl": "u", "min_ad": 2, "floor": "hose"})
        assert a == b

    def test_key_includes_prefix_and_operation(self, cache):
        key = cache.key("INDEX", {"url": "https://x"})
        assert key.startswith("TEST_V1_INDEX_")
        assert "https://x" in key

    def test_different_params_different_keys(self, cache):
        assert cache.key("INDEX", {"url": "a"}) != cache.key("INDEX", {"url": "b"})

    def test_ttl_constants(self):
        assert TTL_INDEX == 4 * 3600
        assert TTL_BREADTH_FRESH == 300
        assert TTL_BREADTH_HISTORY == 86400


# ════════════════════════════════════════════════
#  SAVE / LOAD
# ════════════════════════════════════════════════


class TestSaveLoad:

    def test_round_trip_with_age(self, cache, clock):
        key = cache.key("INDEX", {"url": "a"})
        assert cache.save(key, [1, 2, 3]) is True
        clock.advance(seconds=30)
        hit = cache.load(key)
        assert hit.data == [1, 2, 3]
        assert hit.age_ms == 30_000

    def test_missing_key(self, cache):
        assert cache.load("nope") is None

    def test_age_equal_to_ttl_is_fresh(self, cache, clock):
        cache.save("k", {"a": 1})
        clock.advance(seconds=60)
        assert cache.load("k", ttl=60) is not None

    def test_age_past_ttl_is_miss(self, cache, clock):
        cache.save("k", {"a": 1})
        clock.advance(seconds=60, ms=1)
        assert cache.load("k", ttl=60) is None

    def test_stale_read_without_ttl(self, cache, clock):
        cache.save("k", {"a": 1})
        clock.advance(seconds=10 * 86400)
        assert cache.load("k").data == {"a": 1}

    def test_corrupt_entry_is_miss(self, cache, backend):
        backend.set("k", "{not json")
        assert cache.load("k") is None
        backend.set("k2", '{"data": [1]}')
        assert cache.load("k2") is None

    def test_null_data_is_miss(self, cache, backend):
        backend.set("k", '{"timestamp": 0, "data": null}')
        assert cache.load("k") is None

    def test_quota_exceeded_does_not_raise(self, clock):
        store = CacheStore(MemoryBackend(max_bytes=50), clock=clock, prefix="Q")
        assert store.save("k", list(range(100))) is False
        assert store.load("k") is None

    def test_prefix_bump_orphans_entries(self, backend, clock):
        old = CacheStore(backend, clock=clock, prefix="MBA_CACHE_V4")
        old.save(old.key("INDEX", {"url": "a"}), [1])
        new = CacheStore(backend, clock=clock, prefix="MBA_CACHE_V5")
        assert new.load(new.key("INDEX", {"url": "a"})) is None

    def test_stats(self, cache):
        cache.save("k", [1])
        stats = cache.stats()
        assert stats["prefix"] == "TEST_V1"
        assert stats["backend"] == "memory"
        assert stats["keys"] == 1


# ════════════════════════════════════════════════
#  REDIS BACKEND
# ════════════════════════════════════════════════


class TestRedisBackend:

    def test_offline_graceful(self):
        """Backend degrades gracefully when Redis is unavailable."""
        backend = RedisBackend(url="redis://localhost:9999/15")  # Invalid port
        assert backend.available is False
        assert backend.get("test") is None
        assert backend.stats()["available"] is False

    def test_offline_write_is_reported(self, clock):
        store = CacheStore(RedisBackend(url="redis://localhost:9999/15"), clock=clock, prefix="R")
        assert store.save("k", [1]) is False
