"""Repository Query Caching.

Provides read-through caching of materialized query results:
- Cache keys per entity type, optionally per query parameters
- TTL-bound storage over a cache service, no invalidation on writes
- Per-key locking so a window is computed once per process
- Hit/miss/write metrics
"""

import asyncio

import typing as t
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from arb.adapters.cache import Cache, CacheProtocol
from arb.cleanup import CleanupMixin
from arb.depends import depends
from arb.logger import Logger

from ._base import RepositorySettings


@dataclass
class CacheMetrics:
    """Cache performance metrics."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    invalidations: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses + self.writes


class QueryCache(CleanupMixin):
    """Read-through cache of query results, shared by repositories.

    Entries are lists stored by reference until their TTL expires; callers
    receive a shallow copy of the list, the entities themselves are shared.
    Nothing is invalidated when entities are written, so a read can be up to
    ``cache_ttl`` seconds stale unless ``invalidate()`` is called.
    """

    def __init__(
        self,
        cache: CacheProtocol | None = None,
        settings: RepositorySettings | None = None,
        logger: t.Any = None,
    ) -> None:
        super().__init__()
        self.settings = settings or depends.get_sync(RepositorySettings)
        self.logger = logger or depends.get_sync(Logger)
        if cache is None:
            cache = Cache(logger=self.logger)
            self.register_resource(cache)
        self.cache = cache
        self.metrics = CacheMetrics()
        self._locks: dict[str, asyncio.Lock] = {}
        self._keys: dict[str, set[str]] = {}

    def build_key(self, entity_name: str, digest: str | None = None) -> str:
        key = f"{self.settings.cache_prefix}:{entity_name}:get_all_with_cache"
        return f"{key}:{digest}" if digest else key

    async def _get(self, key: str) -> tuple[Any, bool]:
        try:
            value = await self.cache.get(key)
        except Exception as e:
            self.metrics.errors += 1
            self.logger.warning(f"Cache read failed for {key}: {e}")
            return None, False
        return value, value is not None

    async def _set(self, key: str, value: Any) -> None:
        try:
            await self.cache.set(key, value, ttl=self.settings.cache_ttl)
            self.metrics.writes += 1
        except Exception as e:
            self.metrics.errors += 1
            self.logger.warning(f"Cache write failed for {key}: {e}")

    async def get_or_set(
        self,
        entity_name: str,
        loader: Callable[[], Awaitable[list[Any]]],
        digest: str | None = None,
    ) -> list[Any]:
        """Return the cached list for a key, loading and storing it on a miss.

        Args:
            entity_name: Entity type the result belongs to
            loader: Coroutine factory computing the result from the store
            digest: Optional query fingerprint appended to the key

        Returns:
            A copy of the cached (or freshly loaded) list
        """
        key = self.build_key(entity_name, digest)
        value, found = await self._get(key)
        if found:
            self.metrics.hits += 1
            return list(value)
        self.metrics.misses += 1

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            value, found = await self._get(key)
            if found:
                return list(value)
            value = list(await loader())
            await self._set(key, value)
            self._keys.setdefault(entity_name, set()).add(key)
            self.logger.debug(f"Cached {len(value)} {entity_name} rows under {key}")
        return list(value)

    async def invalidate(self, entity_name: str) -> int:
        """Drop every cached result for an entity type.

        Returns:
            Number of keys removed
        """
        keys = self._keys.pop(entity_name, set())
        keys.add(self.build_key(entity_name))
        removed = 0
        for key in keys:
            if await self.cache.delete(key):
                removed += 1
        self.metrics.invalidations += removed
        return removed

    def get_metrics(self) -> dict[str, Any]:
        return {
            "hits": self.metrics.hits,
            "misses": self.metrics.misses,
            "writes": self.metrics.writes,
            "invalidations": self.metrics.invalidations,
            "errors": self.metrics.errors,
            "hit_rate": self.metrics.hit_rate,
        }

    async def _cleanup_resources(self) -> None:
        self._locks.clear()
        self._keys.clear()


depends.set(QueryCache)
