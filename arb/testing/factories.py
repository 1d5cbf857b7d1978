"""Factories for sample entities and test components."""

from unittest.mock import MagicMock

import typing as t

from arb.adapters.cache import Cache
from arb.adapters.sql import Sql, SqlSettings
from arb.repository import QueryCache, RepositorySettings

from .models import Category, Product


def make_product(index: int, **overrides: t.Any) -> Product:
    values: dict[str, t.Any] = {
        "name": f"Product {index}",
        "sku": f"SKU-{index:04d}",
        "price": float(index),
        "quantity": index,
    }
    return Product(**(values | overrides))


def make_products(count: int, start: int = 1, **overrides: t.Any) -> list[Product]:
    return [make_product(i, **overrides) for i in range(start, start + count)]


def make_category(name: str = "General", **overrides: t.Any) -> Category:
    return Category(name=name, **overrides)


def create_test_logger() -> MagicMock:
    """A logger double recording every call."""
    return MagicMock()


async def create_test_sql(database_url: str | None = None) -> Sql:
    """An initialized sqlite adapter with every SQLModel table created."""
    settings = SqlSettings(database_url=database_url) if database_url else SqlSettings()
    sql = Sql(settings=settings, logger=create_test_logger())
    await sql.init()
    return sql


def create_test_query_cache(**settings: t.Any) -> QueryCache:
    """A query cache over a private memory cache."""
    logger = create_test_logger()
    return QueryCache(
        cache=Cache(logger=logger),
        settings=RepositorySettings(**settings),
        logger=logger,
    )
