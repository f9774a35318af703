import asyncio
import collections
from typing import NamedTuple


class LRUCache:
    """Dict-like cache, evicting the least recently used key beyond capacity. No capacity means unbounded."""

    def __init__(self, capacity=None):
        self.capacity = capacity
        self.cache = collections.OrderedDict()

    def __getitem__(self, key):
        value = self.cache.pop(key)
        self.cache[key] = value
        return value

    def __setitem__(self, key, value):
        try:
            self.cache.pop(key)
        except KeyError:
            if self.capacity is not None and len(self.cache) >= self.capacity:
                self.cache.popitem(last=False)
        self.cache[key] = value

    def __contains__(self, key):
        return key in self.cache

    def __len__(self):
        return len(self.cache)

    def get(self, key, default=None):
        if key not in self.cache:
            return default
        return self[key]

    def clear(self):
        self.cache.clear()


class CacheKey(NamedTuple):
    identifier: str
    shape: str


# cached answer for objects the remote does not have
NOT_FOUND = object()


class ObjectCache:
    """
    Memoizes remote query results per (identifier, field shape) for the
    session. Nothing expires; concurrent misses of one key share a single
    producer call.
    """

    def __init__(self, capacity=None):
        self._entries = LRUCache(capacity)
        self._computing = {}

    @staticmethod
    def key(identifier, shape):
        return CacheKey(identifier, shape.digest)

    def __contains__(self, key):
        return key in self._entries

    def __len__(self):
        return len(self._entries)

    def clear(self):
        self._entries.clear()

    async def get_or_compute(self, key, producer, cacheable=lambda value: True):
        if key in self._entries:
            return self._entries[key]

        future = self._computing.get(key)
        if future is None:
            future = asyncio.ensure_future(self._compute(key, producer, cacheable))
            self._computing[key] = future
        return await asyncio.shield(future)

    async def _compute(self, key, producer, cacheable):
        try:
            value = await producer()
        finally:
            self._computing.pop(key, None)
        if cacheable(value):
            self._entries[key] = value
        return value
