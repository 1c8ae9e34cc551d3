"""Tests for retrieval.cache."""

import pytest

from retrieval.cache import SearchCache

from conftest import make_result


@pytest.fixture
def cache():
    return SearchCache(max_entries=2)


class TestSearchCache:
    def test_miss_then_hit(self, cache):
        key = ("multi", "banner", "u-1", 5)
        assert cache.get(key) is None
        cache.put(key, [make_result("X-1", 0.1)])
        assert [r.id for r in cache.get(key)] == ["X-1"]
        assert cache.hits == 1
        assert cache.misses == 1

    def test_returns_copies(self, cache):
        cache.put("k", [make_result("X-1", 0.1)])
        first = cache.get("k")
        first[0].metadata["source"] = "changed"
        first.append(make_result("X-2", 0.2))
        second = cache.get("k")
        assert len(second) == 1
        assert second[0].metadata["source"] == "youtrack"

    def test_stored_list_is_copied(self, cache):
        results = [make_result("X-1", 0.1)]
        cache.put("k", results)
        results.clear()
        assert len(cache.get("k")) == 1

    def test_invalidate_all(self, cache):
        cache.put("a", [make_result("X-1", 0.1)])
        before = cache.generation
        cache.invalidate_all()
        assert cache.get("a") is None
        assert len(cache) == 0
        assert cache.generation == before + 1

    def test_stale_put_rejected(self, cache):
        generation = cache.generation
        cache.invalidate_all()
        assert cache.put("a", [make_result("X-1", 0.1)], generation) is False
        assert cache.get("a") is None

    def test_current_generation_put_accepted(self, cache):
        assert cache.put("a", [make_result("X-1", 0.1)], cache.generation) is True

    def test_lru_eviction(self, cache):
        cache.put("a", [make_result("A", 0.1)])
        cache.put("b", [make_result("B", 0.1)])
        cache.get("a")
        cache.put("c", [make_result("C", 0.1)])
        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None

    def test_disabled(self):
        cache = SearchCache(enabled=False)
        assert cache.put("a", [make_result("A", 0.1)]) is False
        assert cache.get("a") is None
