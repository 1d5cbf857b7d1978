"""Lazy, re-evaluated entity queries."""

import typing as t
from collections.abc import AsyncIterator
from dataclasses import dataclass, replace
from sqlalchemy import ColumnElement, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel.sql.expression import SelectOfScalar

from .specifications import Ordering, Predicate, apply_ordering, coerce_clause


@dataclass(frozen=True, eq=False)
class EntityQuery[EntityType]:
    """A query over one entity type that runs each time it is consumed.

    Nothing touches the store until ``all()``, ``first()``, ``count()`` or
    ``async for``; every consumption executes the statement again, so
    results reflect the store at that moment. Builder methods return a new
    query and leave this one unchanged.
    """

    session: AsyncSession
    entity_type: type[EntityType]
    criteria: tuple[ColumnElement[bool], ...] = ()
    orderings: tuple[Ordering, ...] = ()
    options: tuple[t.Any, ...] = ()
    limit_count: int | None = None
    offset_count: int | None = None

    def where(self, predicate: Predicate) -> "EntityQuery[EntityType]":
        clause = coerce_clause(predicate, self.entity_type)
        if clause is None:
            return self
        return replace(self, criteria=(*self.criteria, clause))

    def order_by(self, order_by: Ordering | None) -> "EntityQuery[EntityType]":
        if order_by is None:
            return self
        return replace(self, orderings=(*self.orderings, order_by))

    def with_options(self, *options: t.Any) -> "EntityQuery[EntityType]":
        return replace(self, options=(*self.options, *options))

    def limit(self, count: int | None) -> "EntityQuery[EntityType]":
        return replace(self, limit_count=count)

    def offset(self, count: int | None) -> "EntityQuery[EntityType]":
        return replace(self, offset_count=count)

    def _filtered(self) -> SelectOfScalar[EntityType]:
        statement = select(self.entity_type)
        if self.criteria:
            statement = statement.where(*self.criteria)
        return statement

    @property
    def statement(self) -> SelectOfScalar[EntityType]:
        statement = self._filtered()
        if self.options:
            statement = statement.options(*self.options)
        for ordering in self.orderings:
            statement = apply_ordering(statement, ordering, self.entity_type)
        if self.offset_count is not None:
            statement = statement.offset(self.offset_count)
        if self.limit_count is not None:
            statement = statement.limit(self.limit_count)
        return statement

    async def all(self) -> list[EntityType]:
        result = await self.session.exec(self.statement)
        return list(result.all())

    async def first(self) -> EntityType | None:
        result = await self.session.exec(self.statement.limit(1))
        return result.first()

    async def count(self) -> int:
        inner = self._filtered()
        if self.offset_count is not None:
            inner = inner.offset(self.offset_count)
        if self.limit_count is not None:
            inner = inner.limit(self.limit_count)
        result = await self.session.exec(
            select(func.count()).select_from(inner.subquery()),
        )
        return result.one()

    async def __aiter__(self) -> AsyncIterator[EntityType]:
        for entity in await self.all():
            yield entity
