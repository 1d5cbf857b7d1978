"""Query Specification Pattern Implementation.

Provides composable query criteria compiled to SQLAlchemy clauses:
- Specification pattern with logical operators (AND, OR, NOT)
- Field-based comparison specifications
- Coercion of specifications, clauses and callables into WHERE clauses
- Ordering, include path and selector resolution for repository queries
"""

import hashlib
import json
from abc import ABC, abstractmethod
from enum import Enum

import typing as t
from collections.abc import Callable, Sequence
from datetime import date, datetime
from sqlalchemy import ColumnElement, and_, not_, or_
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import ClauseElement, Select
from typing import Any

from ._base import SortCriteria, SortDirection

type Predicate = (
    Specification | ColumnElement[bool] | Callable[[type[Any]], ColumnElement[bool]]
)
type Ordering = (
    Callable[[Select[Any]], Select[Any]]
    | SortCriteria
    | str
    | Sequence[SortCriteria | str | ColumnElement[Any]]
    | ColumnElement[Any]
)
type Include = str | Sequence[str]
type Selector = str | ColumnElement[Any] | Callable[[type[Any]], ColumnElement[Any]]


class ComparisonOperator(Enum):
    """Comparison operators for specifications."""

    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"
    ILIKE = "ilike"  # Case-insensitive like
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"


def _is_clause(value: Any) -> bool:
    return isinstance(value, ClauseElement) or hasattr(value, "__clause_element__")


def column_for(entity_type: type[Any], name: str) -> Any:
    """Return the mapped attribute ``name`` of ``entity_type``.

    Raises:
        ValueError: If the entity has no mapped attribute with that name
    """
    attr = getattr(entity_type, name, None)
    if attr is None or not hasattr(attr, "__clause_element__"):
        msg = f"{entity_type.__name__} has no mapped attribute '{name}'"
        raise ValueError(msg)
    return attr


class Specification(ABC):
    """Abstract base class for query specifications.

    Specifications represent query criteria that can be combined
    using logical operators to build complex queries.
    """

    @abstractmethod
    def to_clause(self, entity_type: type[Any]) -> ColumnElement[bool]:
        """Compile the specification against an entity type.

        Args:
            entity_type: Mapped entity class the criteria apply to

        Returns:
            SQLAlchemy boolean clause
        """

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Convert specification to dictionary representation."""

    def __and__(self, other: "Specification") -> "AndSpecification":
        return AndSpecification([self, other])

    def __or__(self, other: "Specification") -> "OrSpecification":
        return OrSpecification([self, other])

    def __invert__(self) -> "NotSpecification":
        return NotSpecification(self)


class FieldSpecification(Specification):
    """Specification for field-based queries."""

    def __init__(self, field: str, operator: ComparisonOperator, value: Any) -> None:
        self.field = field
        self.operator = operator
        self.value = value

    def to_clause(self, entity_type: type[Any]) -> ColumnElement[bool]:  # noqa: C901
        column = column_for(entity_type, self.field)

        match self.operator:
            case ComparisonOperator.EQUALS:
                return column == self.value
            case ComparisonOperator.NOT_EQUALS:
                return column != self.value
            case ComparisonOperator.GREATER_THAN:
                return column > self.value
            case ComparisonOperator.GREATER_THAN_OR_EQUAL:
                return column >= self.value
            case ComparisonOperator.LESS_THAN:
                return column < self.value
            case ComparisonOperator.LESS_THAN_OR_EQUAL:
                return column <= self.value
            case ComparisonOperator.IN:
                return column.in_(self.value)
            case ComparisonOperator.NOT_IN:
                return column.not_in(self.value)
            case ComparisonOperator.LIKE:
                return column.like(self.value)
            case ComparisonOperator.ILIKE:
                return column.ilike(self.value)
            case ComparisonOperator.CONTAINS:
                return column.contains(self.value, autoescape=True)
            case ComparisonOperator.STARTS_WITH:
                return column.startswith(self.value, autoescape=True)
            case ComparisonOperator.ENDS_WITH:
                return column.endswith(self.value, autoescape=True)
            case ComparisonOperator.IS_NULL:
                return column.is_(None)
            case ComparisonOperator.IS_NOT_NULL:
                return column.is_not(None)
            case ComparisonOperator.BETWEEN:
                return self._between(column)

        msg = f"Unsupported operator: {self.operator}"
        raise ValueError(msg)

    def _between(self, column: Any) -> ColumnElement[bool]:
        if not isinstance(self.value, list | tuple) or len(self.value) != 2:
            msg = "BETWEEN operator requires a list/tuple of 2 values"
            raise ValueError(msg)
        return column.between(self.value[0], self.value[1])

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "field",
            "field": self.field,
            "operator": self.operator.value,
            "value": self.value,
        }


class ExpressionSpecification(Specification):
    """Wraps a callable ``(entity_type) -> clause`` so it composes with ``&``/``|``."""

    def __init__(
        self,
        expression: Callable[[type[Any]], ColumnElement[bool]],
        name: str | None = None,
    ) -> None:
        self.expression = expression
        self.name = name or getattr(expression, "__name__", repr(expression))

    def to_clause(self, entity_type: type[Any]) -> ColumnElement[bool]:
        return self.expression(entity_type)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "expression", "expression": self.name}


class AndSpecification(Specification):
    def __init__(self, specifications: list[Specification]) -> None:
        self.specifications = specifications

    def to_clause(self, entity_type: type[Any]) -> ColumnElement[bool]:
        return and_(*(spec.to_clause(entity_type) for spec in self.specifications))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "and",
            "specifications": [spec.to_dict() for spec in self.specifications],
        }


class OrSpecification(Specification):
    def __init__(self, specifications: list[Specification]) -> None:
        self.specifications = specifications

    def to_clause(self, entity_type: type[Any]) -> ColumnElement[bool]:
        return or_(*(spec.to_clause(entity_type) for spec in self.specifications))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "or",
            "specifications": [spec.to_dict() for spec in self.specifications],
        }


class NotSpecification(Specification):
    def __init__(self, specification: Specification) -> None:
        self.specification = specification

    def to_clause(self, entity_type: type[Any]) -> ColumnElement[bool]:
        return not_(self.specification.to_clause(entity_type))

    def to_dict(self) -> dict[str, Any]:
        return {"type": "not", "specification": self.specification.to_dict()}


def coerce_clause(
    predicate: Predicate | None,
    entity_type: type[Any],
) -> ColumnElement[bool] | None:
    """Turn any accepted predicate form into a WHERE clause.

    Accepts a ``Specification``, a SQLAlchemy boolean clause, or a callable
    taking the entity type and returning either of those.
    """
    if predicate is None:
        return None
    if isinstance(predicate, Specification):
        return predicate.to_clause(entity_type)
    if _is_clause(predicate):
        return t.cast("ColumnElement[bool]", predicate)
    if callable(predicate):
        result = predicate(entity_type)
        if result is None or not (
            isinstance(result, Specification) or _is_clause(result)
        ):
            msg = f"Predicate {predicate!r} did not return a clause"
            raise TypeError(msg)
        return coerce_clause(result, entity_type)

    msg = f"Unsupported predicate type: {type(predicate).__name__}"
    raise TypeError(msg)


def _order_clause(entity_type: type[Any], item: Any) -> Any:
    if isinstance(item, SortCriteria):
        column = column_for(entity_type, item.field)
        return column.desc() if item.direction == SortDirection.DESC else column.asc()
    if isinstance(item, str):
        return column_for(entity_type, item)
    if _is_clause(item):
        return item

    msg = f"Unsupported ordering type: {type(item).__name__}"
    raise TypeError(msg)


def apply_ordering(
    statement: Select[Any],
    order_by: Ordering | None,
    entity_type: type[Any],
) -> Select[Any]:
    """Apply a caller ordering to a select statement."""
    if order_by is None:
        return statement
    if isinstance(order_by, SortCriteria | str) or _is_clause(order_by):
        return statement.order_by(_order_clause(entity_type, order_by))
    if callable(order_by):
        return order_by(statement)
    return statement.order_by(*(_order_clause(entity_type, o) for o in order_by))


def parse_include(include: Include | None) -> list[str]:
    """Split a comma-separated include string into relationship paths."""
    if not include:
        return []
    paths = include.split(",") if isinstance(include, str) else list(include)
    return [path.strip() for path in paths if path and path.strip()]


def include_options(entity_type: type[Any], include: Include | None) -> list[Any]:
    """Build one ``selectinload`` loader per include path.

    Dotted paths (``"category.parent"``) chain the loader through each
    relationship.

    Raises:
        ValueError: If a path segment is not a relationship
    """
    options = []
    for path in parse_include(include):
        current = entity_type
        loader = None
        for name in path.split("."):
            relationships = sa_inspect(current).relationships
            if name not in relationships:
                msg = f"{current.__name__} has no relationship '{name}' (in '{path}')"
                raise ValueError(msg)
            attr = getattr(current, name)
            loader = selectinload(attr) if loader is None else loader.selectinload(attr)
            current = relationships[name].mapper.class_
        options.append(loader)
    return options


def resolve_selector(entity_type: type[Any], selector: Selector) -> Any:
    """Resolve an aggregate selector to a column expression."""
    if isinstance(selector, str):
        return column_for(entity_type, selector)
    if _is_clause(selector):
        return selector
    if callable(selector):
        return selector(entity_type)

    msg = f"Unsupported selector type: {type(selector).__name__}"
    raise TypeError(msg)


def describe_statement(
    statement: Select[Any],
    include: Include | None = None,
) -> str:
    """Stable digest of a statement's SQL, bound values and include paths."""
    compiled = statement.compile()
    description = {
        "sql": str(compiled),
        "params": compiled.params,
        "include": sorted(parse_include(include)),
    }
    payload = json.dumps(description, sort_keys=True, default=str)
    return hashlib.md5(payload.encode(), usedforsecurity=False).hexdigest()


# Convenience functions for creating specifications
def equals(field: str, value: Any) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.EQUALS, value)


def not_equals(field: str, value: Any) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.NOT_EQUALS, value)


def greater_than(field: str, value: Any) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.GREATER_THAN, value)


def greater_than_or_equal(field: str, value: Any) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.GREATER_THAN_OR_EQUAL, value)


def less_than(field: str, value: Any) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.LESS_THAN, value)


def less_than_or_equal(field: str, value: Any) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.LESS_THAN_OR_EQUAL, value)


def in_values(field: str, values: list[Any]) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.IN, values)


def not_in_values(field: str, values: list[Any]) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.NOT_IN, values)


def like(field: str, pattern: str) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.LIKE, pattern)


def ilike(field: str, pattern: str) -> FieldSpecification:
    """Create case-insensitive LIKE specification."""
    return FieldSpecification(field, ComparisonOperator.ILIKE, pattern)


def contains(field: str, value: str) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.CONTAINS, value)


def starts_with(field: str, value: str) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.STARTS_WITH, value)


def ends_with(field: str, value: str) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.ENDS_WITH, value)


def is_null(field: str) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.IS_NULL, None)


def is_not_null(field: str) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.IS_NOT_NULL, None)


def between(field: str, start: Any, end: Any) -> FieldSpecification:
    return FieldSpecification(field, ComparisonOperator.BETWEEN, [start, end])


def date_range(field: str, start_date: date, end_date: date) -> FieldSpecification:
    return between(field, start_date, end_date)


def datetime_range(
    field: str,
    start_datetime: datetime,
    end_datetime: datetime,
) -> FieldSpecification:
    return between(field, start_datetime, end_datetime)


def expression(
    func: Callable[[type[Any]], ColumnElement[bool]],
    name: str | None = None,
) -> ExpressionSpecification:
    """Wrap a callable predicate as a specification."""
    return ExpressionSpecification(func, name)


def and_specs(*specifications: Specification) -> AndSpecification:
    return AndSpecification(list(specifications))


def or_specs(*specifications: Specification) -> OrSpecification:
    return OrSpecification(list(specifications))


def not_spec(specification: Specification) -> NotSpecification:
    return NotSpecification(specification)
