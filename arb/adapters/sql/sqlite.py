from pathlib import Path

import typing as t
from pydantic import field_validator
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from ._base import SqlBase, SqlBaseSettings


class SqlSettings(SqlBaseSettings):
    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v.startswith("sqlite+aiosqlite://"):
            msg = "Database URL must start with sqlite+aiosqlite://"
            raise ValueError(msg)
        return v


class Sql(SqlBase):
    def __init__(
        self,
        settings: SqlSettings | None = None,
        logger: t.Any = None,
    ) -> None:
        super().__init__(settings=settings or SqlSettings(), logger=logger)

    def _engine_options(self) -> dict[str, t.Any]:
        options = super()._engine_options()
        if self.settings.is_memory:
            # one shared connection, otherwise every checkout sees an empty database
            options.setdefault("poolclass", StaticPool)
            options.setdefault("connect_args", {"check_same_thread": False})
        return options

    async def _create_client(self) -> t.Any:
        database = make_url(self.settings.database_url).database
        if not self.settings.is_memory and database:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return await super()._create_client()

    async def init(self) -> None:
        self.logger.info(
            "Initializing in-memory SQLite database"
            if self.settings.is_memory
            else "Initializing local SQLite database",
        )
        await super().init()
