import asyncio
import typing as t
from contextlib import asynccontextmanager
from sqlalchemy import log as sqlalchemy_log
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from arb.cleanup import CleanupMixin
from arb.config import Settings
from arb.depends import depends
from arb.logger import Logger


class SqlBaseSettings(Settings):
    database_url: str = "sqlite+aiosqlite:///:memory:"
    echo: bool = False
    engine_kwargs: dict[str, t.Any] = {}

    @property
    def is_memory(self) -> bool:
        database = make_url(self.database_url).database
        return database in (None, "", ":memory:")


class SqlProtocol(t.Protocol):
    @property
    def engine(self) -> AsyncEngine: ...

    def get_session(self) -> t.AsyncContextManager[AsyncSession]: ...

    async def init(self) -> None: ...


class SqlBase(CleanupMixin):
    """Owns one async engine and hands out sessions bound to it."""

    def __init__(
        self,
        settings: SqlBaseSettings | None = None,
        logger: t.Any = None,
    ) -> None:
        super().__init__()
        self.settings = settings or SqlBaseSettings()
        self.logger = logger or depends.get_sync(Logger)
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._engine_lock: asyncio.Lock | None = None

    def _engine_options(self) -> dict[str, t.Any]:
        return {"echo": self.settings.echo} | self.settings.engine_kwargs

    async def _create_client(self) -> AsyncEngine:
        return create_async_engine(self.settings.database_url, **self._engine_options())

    async def get_engine(self) -> AsyncEngine:
        if self._engine is None:
            if self._engine_lock is None:
                self._engine_lock = asyncio.Lock()
            async with self._engine_lock:
                if self._engine is None:
                    self._engine = await self._create_client()
                    self._sessionmaker = async_sessionmaker(
                        self._engine,
                        class_=AsyncSession,
                        expire_on_commit=False,
                    )
        return self._engine

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            msg = "Engine not initialized. Call get_engine() first."
            raise RuntimeError(msg)
        return self._engine

    async def session(self) -> AsyncSession:
        """Return a new session; the caller owns closing it."""
        await self.get_engine()
        assert self._sessionmaker is not None
        return self._sessionmaker()

    @asynccontextmanager
    async def get_session(self) -> t.AsyncGenerator[AsyncSession]:
        session = await self.session()
        async with session as sess:
            yield sess

    @asynccontextmanager
    async def get_conn(self) -> t.AsyncGenerator[AsyncConnection]:
        engine = await self.get_engine()
        async with engine.begin() as conn:
            yield conn

    async def create_all(self) -> None:
        async with self.get_conn() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.get_conn() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)

    async def init(self) -> None:
        sqlalchemy_log._add_default_handler = lambda logger: None  # type: ignore[misc,assignment]
        try:
            await self.create_all()
        except Exception as e:
            self.logger.exception(e)
            raise

    async def _cleanup_resources(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self.logger.debug("Disposed SQL engine")
        self._engine = None
        self._sessionmaker = None
