"""Testing helpers: sample entities, factories and pytest fixtures."""

from .factories import (
    create_test_logger,
    create_test_query_cache,
    create_test_sql,
    make_category,
    make_product,
    make_products,
)
from .models import Category, Product

__all__ = [
    "Category",
    "Product",
    "create_test_logger",
    "create_test_query_cache",
    "create_test_sql",
    "make_category",
    "make_product",
    "make_products",
]
