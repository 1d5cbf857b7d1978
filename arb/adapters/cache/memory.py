import typing as t
from aiocache.backends.memory import SimpleMemoryCache
from aiocache.serializers import NullSerializer

from ._base import CacheBase, CacheBaseSettings


class CacheSettings(CacheBaseSettings): ...


class Cache(CacheBase):
    """In-process cache over aiocache's ``SimpleMemoryCache``.

    Values are stored by reference (``NullSerializer``), so callers must
    treat cached objects as read-only.
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        logger: t.Any = None,
    ) -> None:
        super().__init__(settings=settings or CacheSettings(), logger=logger)

    async def _create_client(self) -> SimpleMemoryCache:
        cache = SimpleMemoryCache(
            serializer=NullSerializer(),
            namespace=f"{self.settings.namespace}:",
        )
        cache.timeout = 0.0
        return cache

    async def get(self, key: str) -> t.Any:
        cache = await self.get_client()
        return await cache.get(key)

    async def set(self, key: str, value: t.Any, ttl: float | None = None) -> None:
        cache = await self.get_client()
        await cache.set(key, value, ttl=self.settings.default_ttl if ttl is None else ttl)

    async def delete(self, key: str) -> bool:
        cache = await self.get_client()
        return bool(await cache.delete(key))

    async def exists(self, key: str) -> bool:
        cache = await self.get_client()
        return bool(await cache.exists(key))

    async def clear(self) -> None:
        cache = await self.get_client()
        await cache.clear()

    async def _cleanup_resources(self) -> None:
        if self._client is not None:
            try:
                await self._client.clear()
                self.logger.debug("Cleared memory cache")
            finally:
                self._client = None
