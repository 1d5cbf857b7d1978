"""Generic async repositories over SQLModel entities.

Provides CRUD with a soft-delete lifecycle, paging, aggregation, bulk
writes, raw SQL and a TTL-bound query cache, with lifecycle writes run in a
unit of work.
"""

from ._base import (
    EntityNotFoundError,
    RepositoryBase,
    RepositoryError,
    RepositoryProtocol,
    RepositorySettings,
    SortCriteria,
    SortDirection,
    UnitOfWorkError,
)
from .cache import CacheMetrics, QueryCache
from .entities import (
    EntityBase,
    PagedResult,
    UTCDateTime,
    detached_copy,
    ensure_utc,
    utc_now,
)
from .query import EntityQuery
from .specifications import (
    ComparisonOperator,
    FieldSpecification,
    Specification,
    and_specs,
    between,
    contains,
    equals,
    expression,
    greater_than,
    greater_than_or_equal,
    in_values,
    is_not_null,
    is_null,
    less_than,
    less_than_or_equal,
    not_equals,
    not_spec,
    or_specs,
    starts_with,
)
from .sql import SqlRepository
from .unit_of_work import (
    UnitOfWork,
    UnitOfWorkManager,
    UnitOfWorkMetrics,
    UnitOfWorkState,
)

__all__ = [
    "CacheMetrics",
    "ComparisonOperator",
    "EntityBase",
    "EntityNotFoundError",
    "EntityQuery",
    "FieldSpecification",
    "PagedResult",
    "QueryCache",
    "RepositoryBase",
    "RepositoryError",
    "RepositoryProtocol",
    "RepositorySettings",
    "SortCriteria",
    "SortDirection",
    "Specification",
    "SqlRepository",
    "UTCDateTime",
    "UnitOfWork",
    "UnitOfWorkError",
    "UnitOfWorkManager",
    "UnitOfWorkMetrics",
    "UnitOfWorkState",
    "and_specs",
    "between",
    "contains",
    "detached_copy",
    "ensure_utc",
    "equals",
    "expression",
    "greater_than",
    "greater_than_or_equal",
    "in_values",
    "is_not_null",
    "is_null",
    "less_than",
    "less_than_or_equal",
    "not_equals",
    "not_spec",
    "or_specs",
    "starts_with",
    "utc_now",
]
