"""Tests for the lru cache and the object cache."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from remotehubfs.api import CONTENT_SHAPE, STAT_SHAPE
from remotehubfs.cache import NOT_FOUND, CacheKey, LRUCache, ObjectCache


class TestLRUCache:
    def test_evicts_least_recently_used(self):
        cache = LRUCache(capacity=2)
        cache["a"] = 1
        cache["b"] = 2
        cache["a"]
        cache["c"] = 3

        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_unbounded(self):
        cache = LRUCache()
        for i in range(1000):
            cache[i] = i

        assert len(cache) == 1000

    def test_get(self):
        cache = LRUCache(capacity=1)
        cache["a"] = 1

        assert cache.get("a") == 1
        assert cache.get("b", 2) == 2

    def test_overwrite_does_not_evict(self):
        cache = LRUCache(capacity=2)
        cache["a"] = 1
        cache["b"] = 2
        cache["b"] = 3

        assert cache["a"] == 1
        assert cache["b"] == 3


class TestObjectCache:
    def test_key_includes_shape(self):
        identifier = "remotehub://github.com/o/r/a"

        assert ObjectCache.key(identifier, STAT_SHAPE) == CacheKey(identifier, STAT_SHAPE.digest)
        assert ObjectCache.key(identifier, STAT_SHAPE) != ObjectCache.key(identifier, CONTENT_SHAPE)

    @pytest.mark.asyncio
    async def test_second_lookup_is_a_hit(self):
        cache = ObjectCache()
        producer = AsyncMock(return_value={"byteSize": 1})

        first = await cache.get_or_compute("k", producer)
        second = await cache.get_or_compute("k", producer)

        assert first == second == {"byteSize": 1}
        assert producer.await_count == 1
        assert "k" in cache

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_producer(self):
        cache = ObjectCache()
        calls = []

        async def producer():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "value"

        values = await asyncio.gather(*[cache.get_or_compute("k", producer) for _ in range(5)])

        assert values == ["value"] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_uncacheable_values_are_not_stored(self):
        cache = ObjectCache()
        producer = AsyncMock(return_value=None)

        await cache.get_or_compute("k", producer, cacheable=lambda value: value is not None)
        await cache.get_or_compute("k", producer, cacheable=lambda value: value is not None)

        assert producer.await_count == 2
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_not_found_is_stored(self):
        cache = ObjectCache()
        producer = AsyncMock(return_value=NOT_FOUND)

        assert await cache.get_or_compute("k", producer) is NOT_FOUND
        assert await cache.get_or_compute("k", producer) is NOT_FOUND
        assert producer.await_count == 1

    @pytest.mark.asyncio
    async def test_producer_error_is_not_stored(self):
        cache = ObjectCache()
        producer = AsyncMock(side_effect=[RuntimeError("boom"), "value"])

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("k", producer)

        assert await cache.get_or_compute("k", producer) == "value"

    @pytest.mark.asyncio
    async def test_bounded(self):
        cache = ObjectCache(capacity=1)

        await cache.get_or_compute("a", AsyncMock(return_value=1))
        await cache.get_or_compute("b", AsyncMock(return_value=2))

        assert "a" not in cache
        assert "b" in cache
