"""Pytest fixtures for arb components.

Each test gets its own in-memory database and its own query cache, so
cache keys shared by entity type never leak between tests.
"""

from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession

from arb.adapters.sql import Sql
from arb.repository import QueryCache, RepositorySettings, SqlRepository

from .factories import create_test_logger, create_test_query_cache, create_test_sql
from .models import Category, Product


@pytest.fixture
def arb_logger() -> MagicMock:
    return create_test_logger()


@pytest.fixture
async def arb_sql() -> AsyncGenerator[Sql]:
    sql = await create_test_sql()
    yield sql
    await sql.cleanup()


@pytest.fixture
async def arb_session(arb_sql: Sql) -> AsyncGenerator[AsyncSession]:
    async with arb_sql.get_session() as session:
        yield session


@pytest.fixture
async def arb_query_cache() -> AsyncGenerator[QueryCache]:
    query_cache = create_test_query_cache()
    yield query_cache
    await query_cache.cleanup()


@pytest.fixture
def product_repository(
    arb_session: AsyncSession,
    arb_query_cache: QueryCache,
    arb_logger: MagicMock,
) -> SqlRepository[Product, int]:
    return SqlRepository(
        Product,
        arb_session,
        cache=arb_query_cache,
        settings=RepositorySettings(),
        logger=arb_logger,
    )


@pytest.fixture
def category_repository(
    arb_session: AsyncSession,
    arb_query_cache: QueryCache,
    arb_logger: MagicMock,
) -> SqlRepository[Category, int]:
    return SqlRepository(
        Category,
        arb_session,
        cache=arb_query_cache,
        settings=RepositorySettings(),
        logger=arb_logger,
    )
