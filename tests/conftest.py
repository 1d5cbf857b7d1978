"""Configuration for pytest testing framework."""

import pytest

from arb.testing.fixtures import (  # noqa: F401
    arb_logger,
    arb_query_cache,
    arb_session,
    arb_sql,
    category_repository,
    product_repository,
)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast test without a database")
    config.addinivalue_line(
        "markers",
        "integration: test against an in-memory SQLite database",
    )
