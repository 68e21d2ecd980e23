"""Tests for the provider-scoped embedding cache."""

from study_orchestrator.cache.embedding_cache import EmbeddingCache
from study_orchestrator.config import EmbeddingCacheConfig

from fakes import FakeClock


def test_key_is_scoped_by_provider():
    assert EmbeddingCache.make_key("a", "hello") != EmbeddingCache.make_key("b", "hello")
    assert EmbeddingCache.make_key("a", "hello") == EmbeddingCache.make_key("a", "hello")


def test_key_does_not_embed_raw_text():
    key = EmbeddingCache.make_key("local", "my secret study notes")
    assert "secret" not in key
    assert key.startswith("local:")
    assert len(key.split(":", 1)[1]) == 32


def test_set_then_get():
    cache = EmbeddingCache()
    cache.set("local", "text", [0.1, 0.2])
    assert cache.get("local", "text") == [0.1, 0.2]
    assert cache.get("other", "text") is None


def test_stored_vector_is_a_copy():
    cache = EmbeddingCache()
    vector = [1.0, 2.0]
    cache.set("local", "text", vector)
    vector.append(3.0)
    assert cache.get("local", "text") == [1.0, 2.0]


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = EmbeddingCache(EmbeddingCacheConfig(ttl_seconds=10), clock=clock)
    cache.set("local", "text", [1.0])
    clock.advance(11)
    assert cache.get("local", "text") is None


def test_capacity_bounded():
    cache = EmbeddingCache(EmbeddingCacheConfig(max_entries=2))
    for i in range(5):
        cache.set("local", f"text {i}", [float(i)])
    assert cache.stats()["size"] == 2
    assert cache.get("local", "text 4") == [4.0]


def test_invalidate_provider():
    cache = EmbeddingCache()
    cache.set("a", "one", [1.0])
    cache.set("a", "two", [2.0])
    cache.set("b", "one", [3.0])
    assert cache.invalidate_provider("a") == 2
    assert cache.get("b", "one") == [3.0]
