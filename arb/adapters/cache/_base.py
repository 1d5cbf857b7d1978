import asyncio
import typing as t

from arb.cleanup import CleanupMixin
from arb.config import Settings
from arb.depends import depends
from arb.logger import Logger


class CacheBaseSettings(Settings):
    default_ttl: int = 300
    namespace: str = "arb"


@t.runtime_checkable
class CacheProtocol(t.Protocol):
    async def get(self, key: str) -> t.Any: ...

    async def set(self, key: str, value: t.Any, ttl: float | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def exists(self, key: str) -> bool: ...

    async def clear(self) -> None: ...


class CacheBase(CleanupMixin):
    """Cache service over a lazily created client.

    Subclasses implement ``_create_client``; every operation goes through
    ``_ensure_client`` so the client is built once per adapter.
    """

    def __init__(
        self,
        settings: CacheBaseSettings | None = None,
        logger: t.Any = None,
    ) -> None:
        super().__init__()
        self.settings = settings or CacheBaseSettings()
        self.logger = logger or depends.get_sync(Logger)
        self._client: t.Any = None
        self._client_lock: asyncio.Lock | None = None

    async def _ensure_client(self) -> t.Any:
        if self._client is None:
            if self._client_lock is None:
                self._client_lock = asyncio.Lock()
            async with self._client_lock:
                if self._client is None:
                    self._client = await self._create_client()
                    self.register_resource(self._client)
        return self._client

    async def _create_client(self) -> t.Any:
        msg = "Subclasses must implement _create_client()"
        raise NotImplementedError(msg)

    async def get_client(self) -> t.Any:
        return await self._ensure_client()

    async def get(self, key: str) -> t.Any:
        msg = "Subclasses must implement get()"
        raise NotImplementedError(msg)

    async def set(self, key: str, value: t.Any, ttl: float | None = None) -> None:
        msg = "Subclasses must implement set()"
        raise NotImplementedError(msg)

    async def delete(self, key: str) -> bool:
        msg = "Subclasses must implement delete()"
        raise NotImplementedError(msg)

    async def exists(self, key: str) -> bool:
        msg = "Subclasses must implement exists()"
        raise NotImplementedError(msg)

    async def clear(self) -> None:
        msg = "Subclasses must implement clear()"
        raise NotImplementedError(msg)

    async def _cleanup_resources(self) -> None:
        self._client = None
