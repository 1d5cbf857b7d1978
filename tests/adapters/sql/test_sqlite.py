"""Tests for the SQLite adapter."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy import func, text
from sqlalchemy.pool import StaticPool
from sqlmodel import select

from arb.adapters.sql import Sql, SqlSettings
from arb.repository import utc_now
from arb.testing import Category


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock()


class TestSqlSettings:
    @pytest.mark.unit
    def test_defaults(self) -> None:
        settings = SqlSettings()
        assert settings.database_url == "sqlite+aiosqlite:///:memory:"
        assert settings.is_memory
        assert not settings.echo

    @pytest.mark.unit
    def test_file_database(self, tmp_path: Path) -> None:
        settings = SqlSettings(database_url=f"sqlite+aiosqlite:///{tmp_path}/app.db")
        assert not settings.is_memory

    @pytest.mark.unit
    def test_rejects_other_drivers(self) -> None:
        with pytest.raises(ValidationError, match="sqlite\\+aiosqlite"):
            SqlSettings(database_url="postgresql+asyncpg://localhost/app")


class TestSql:
    @pytest.mark.unit
    def test_memory_engine_options(self, mock_logger: MagicMock) -> None:
        options = Sql(logger=mock_logger)._engine_options()

        assert options["poolclass"] is StaticPool
        assert options["connect_args"] == {"check_same_thread": False}

    @pytest.mark.unit
    def test_engine_kwargs_override(self, mock_logger: MagicMock) -> None:
        settings = SqlSettings(engine_kwargs={"echo": True, "poolclass": None})

        options = Sql(settings=settings, logger=mock_logger)._engine_options()

        assert options["echo"] is True
        assert options["poolclass"] is None

    @pytest.mark.unit
    def test_engine_before_init(self, mock_logger: MagicMock) -> None:
        with pytest.raises(RuntimeError, match="Engine not initialized"):
            _ = Sql(logger=mock_logger).engine

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_init_creates_tables(self, mock_logger: MagicMock) -> None:
        sql = Sql(logger=mock_logger)
        await sql.init()

        async with sql.get_conn() as conn:
            result = await conn.execute(
                text("SELECT name FROM sqlite_master WHERE type = 'table'"),
            )
            tables = {row[0] for row in result}

        assert {"products", "categories"} <= tables
        mock_logger.info.assert_called_with("Initializing in-memory SQLite database")
        await sql.cleanup()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sessions_share_memory_database(self, mock_logger: MagicMock) -> None:
        sql = Sql(logger=mock_logger)
        await sql.init()

        async with sql.get_session() as session:
            session.add(Category(name="Home", created_at=utc_now()))
            await session.commit()
        async with sql.get_session() as session:
            result = await session.exec(select(func.count()).select_from(Category))
            count = result.one()

        assert count == 1
        await sql.cleanup()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_file_database_creates_parent(
        self,
        tmp_path: Path,
        mock_logger: MagicMock,
    ) -> None:
        database = tmp_path / "nested" / "app.db"
        sql = Sql(
            settings=SqlSettings(database_url=f"sqlite+aiosqlite:///{database}"),
            logger=mock_logger,
        )

        await sql.init()

        assert database.exists()
        mock_logger.info.assert_called_with("Initializing local SQLite database")
        await sql.cleanup()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_cleanup_disposes_engine(self, mock_logger: MagicMock) -> None:
        sql = Sql(logger=mock_logger)
        await sql.get_engine()

        await sql.cleanup()

        assert sql._engine is None
        mock_logger.debug.assert_called_with("Disposed SQL engine")
