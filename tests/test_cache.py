"""Tests for the TTL cache."""

import threading

from salesqueue.cache import TTLCache


class TestTTLCache:
    """Expiry and overwrite semantics."""

    def test_get_after_set_returns_value(self, clock):
        """A fresh entry is returned."""
        cache = TTLCache(clock=clock)
        cache.set("stages_all", [1, 2], ttl_seconds=10)
        assert cache.get("stages_all") == [1, 2]

    def test_missing_key_returns_default(self, clock):
        """Absence is not an error."""
        cache = TTLCache(clock=clock)
        assert cache.get("nope") is None
        assert cache.get("nope", default="x") == "x"

    def test_entry_expires_at_deadline(self, clock):
        """An entry read at exactly its expiry instant is absent."""
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl_seconds=10)
        clock.advance(9.999)
        assert cache.get("k") == "v"
        clock.advance(0.001)
        assert cache.get("k") is None

    def test_expired_entry_is_evicted_on_read(self, clock):
        """Lazy eviction removes the entry once read after expiry."""
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl_seconds=1)
        assert len(cache) == 1
        clock.advance(5)
        cache.get("k")
        assert len(cache) == 0

    def test_overwrite_resets_expiry(self, clock):
        """Setting a key again restarts its TTL."""
        cache = TTLCache(clock=clock)
        cache.set("k", "old", ttl_seconds=10)
        clock.advance(8)
        cache.set("k", "new", ttl_seconds=10)
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_falsy_values_are_cached(self, clock):
        """An empty list is a value, not a miss."""
        cache = TTLCache(clock=clock)
        cache.set("filters_all", [], ttl_seconds=10)
        assert cache.get("filters_all") == []

    def test_delete_prefix(self, clock):
        """Only keys with the prefix are dropped."""
        cache = TTLCache(clock=clock)
        cache.set("filters_all", 1, 10)
        cache.set("filters_deals", 2, 10)
        cache.set("stages_all", 3, 10)
        cache.delete_prefix("filters_")
        assert cache.get("filters_all") is None
        assert cache.get("filters_deals") is None
        assert cache.get("stages_all") == 3

    def test_delete_and_clear(self, clock):
        """delete drops one key, clear drops all."""
        cache = TTLCache(clock=clock)
        cache.set("a", 1, 10)
        cache.set("b", 2, 10)
        cache.delete("a")
        cache.delete("missing")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_concurrent_writers_on_independent_keys(self):
        """Threads writing distinct keys never lose entries."""
        cache = TTLCache()

        def writer(prefix: str):
            for i in range(200):
                cache.set(f"{prefix}{i}", i, ttl_seconds=60)

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 800
        assert cache.get("c199") == 199
