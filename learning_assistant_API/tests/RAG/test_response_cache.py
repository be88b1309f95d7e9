"""
Tests for the bounded TTL response cache and its key derivation.
"""

import threading

import pytest

from learning_assistant_API.app.core.RAG.rag_service.cache import ResponseCache, make_cache_key


@pytest.mark.unit
class TestResponseCache:
    def test_get_after_set(self, fake_clock):
        cache = ResponseCache(max_size=10, ttl=300, clock=fake_clock)
        cache.set("k", {"reply": "hi"})

        assert cache.get("k") == {"reply": "hi"}
        assert "k" in cache

    def test_entry_expires_after_ttl(self, fake_clock):
        cache = ResponseCache(max_size=10, ttl=300, clock=fake_clock)
        cache.set("k", "value")

        fake_clock.advance(299)
        assert cache.get("k") == "value"

        fake_clock.advance(1)
        assert cache.get("k") is None
        assert "k" not in cache
        assert len(cache) == 0

    def test_overflow_evicts_earliest_inserted(self, fake_clock):
        cache = ResponseCache(max_size=3, ttl=300, clock=fake_clock)
        for key in ["a", "b", "c"]:
            cache.set(key, key)

        cache.set("d", "d")

        assert len(cache) == 3
        assert "a" not in cache
        assert all(key in cache for key in ["b", "c", "d"])
        assert cache.get_stats()["evictions"] == 1

    def test_reads_do_not_protect_an_entry(self, fake_clock):
        cache = ResponseCache(max_size=2, ttl=300, clock=fake_clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")

        cache.set("c", 3)

        assert "a" not in cache
        assert "b" in cache and "c" in cache

    def test_overwrite_keeps_insertion_position(self, fake_clock):
        cache = ResponseCache(max_size=2, ttl=300, clock=fake_clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        cache.set("c", 3)

        assert "a" not in cache
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_stats(self, fake_clock):
        cache = ResponseCache(max_size=5, ttl=60, clock=fake_clock)
        cache.set("a", 1)
        cache.get("a")
        cache.get("missing")

        stats = cache.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["size"] == 1

    def test_clear(self, fake_clock):
        cache = ResponseCache(max_size=5, ttl=60, clock=fake_clock)
        cache.set("a", 1)
        cache.clear()

        assert len(cache) == 0
        assert cache.get_stats()["hits"] == 0

    def test_concurrent_inserts_respect_capacity(self):
        cache = ResponseCache(max_size=50, ttl=60)

        def writer(prefix):
            for i in range(200):
                cache.set(f"{prefix}-{i}", i)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 50
        assert cache.get_stats()["evictions"] == 750


@pytest.mark.unit
class TestCacheKey:
    def test_field_order_does_not_matter(self):
        first = make_cache_key({"mode": "chat", "model": "m", "prompt": "p"})
        second = make_cache_key({"prompt": "p", "model": "m", "mode": "chat"})
        assert first == second

    def test_every_field_changes_the_key(self):
        base = {"mode": "direct", "model": "m", "prompt": "p", "system_prompt": "", "max_tokens": 2048}
        key = make_cache_key(base)

        for field, value in [
            ("mode", "chat"),
            ("model", "other"),
            ("prompt", "p2"),
            ("system_prompt", "be brief"),
            ("max_tokens", 1024),
        ]:
            assert make_cache_key({**base, field: value}) != key

    def test_key_is_sha256_hex(self):
        key = make_cache_key({"mode": "chat"})
        assert len(key) == 64
        int(key, 16)
