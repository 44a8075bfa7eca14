from __future__ import annotations

import pytest

from batchloader.cache import CacheMap, InMemoryCacheMap, LRUCacheMap


class TestInMemoryCacheMap:
    def test_set_get_delete(self) -> None:
        store = InMemoryCacheMap()
        store.set("a", 1)
        assert store.get("a") == 1
        assert "a" in store
        store.delete("a")
        assert store.get("a") is None
        assert len(store) == 0

    def test_delete_missing_is_noop(self) -> None:
        store = InMemoryCacheMap()
        store.delete("missing")
        assert len(store) == 0

    def test_clear(self) -> None:
        store = InMemoryCacheMap()
        store.set(1, "x")
        store.set(2, "y")
        store.clear()
        assert len(store) == 0

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryCacheMap(), CacheMap)
        assert isinstance(LRUCacheMap(), CacheMap)
        assert not isinstance({}, CacheMap)


class TestLRUCacheMap:
    def test_evicts_least_recently_used(self) -> None:
        store = LRUCacheMap(max_size=2)
        store.set("a", 1)
        store.set("b", 2)
        store.get("a")  # "b" is now oldest
        store.set("c", 3)
        assert "a" in store
        assert "b" not in store
        assert "c" in store

    def test_overwrite_refreshes_entry(self) -> None:
        store = LRUCacheMap(max_size=2)
        store.set("a", 1)
        store.set("b", 2)
        store.set("a", 10)
        store.set("c", 3)
        assert store.get("a") == 10
        assert store.get("b") is None

    def test_get_missing_returns_none(self) -> None:
        assert LRUCacheMap().get("nope") is None

    def test_rejects_zero_size(self) -> None:
        with pytest.raises(ValueError):
            LRUCacheMap(max_size=0)
