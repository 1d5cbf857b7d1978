"""SQL repository over a SQLModel ``AsyncSession``.

Reads filter to active entities unless stated otherwise. Writes that touch
the entity lifecycle (add, update, soft delete, restore) run in a unit of
work and roll back before the original error propagates. Bulk writes and raw
SQL execute directly on the session's connection and are committed as-is.
"""

import typing as t
from collections.abc import Callable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from sqlalchemy import ColumnElement, bindparam, func, insert, text, true, update
from sqlalchemy import inspect as sa_inspect
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Any
from uuid import UUID

from arb.depends import depends

from ._base import RepositoryBase, RepositorySettings
from .cache import QueryCache
from .entities import EntityBase, PagedResult, detached_copy, utc_now
from .query import EntityQuery
from .specifications import (
    Include,
    Ordering,
    Predicate,
    Selector,
    coerce_clause,
    describe_statement,
    include_options,
    resolve_selector,
)
from .unit_of_work import UnitOfWork, UnitOfWorkManager


class SqlRepository[EntityType: EntityBase, IDType](
    RepositoryBase[EntityType, IDType],
):
    """Generic repository for one ``EntityBase`` table.

    Example:
        async with sql.get_session() as session:
            products = SqlRepository(Product, session, cache=query_cache)
            product = await products.add(Product(name="Lamp", sku="L-1"))
            await products.soft_delete(product, deleted_by=user_id)
    """

    def __init__(
        self,
        entity_type: type[EntityType],
        session: AsyncSession,
        *,
        cache: QueryCache | None = None,
        settings: RepositorySettings | None = None,
        logger: Any = None,
        clock: Callable[[], datetime] = utc_now,
        transactions: UnitOfWorkManager | None = None,
    ) -> None:
        super().__init__(entity_type, settings=settings, logger=logger)
        self.session = session
        self.clock = clock
        if cache is None and self.settings.cache_enabled:
            cache = depends.get_sync(QueryCache)
        self.cache = cache
        if transactions is None:
            transactions = UnitOfWorkManager()
            self.register_resource(transactions)
        self.transactions = transactions
        self._table = t.cast("t.Any", entity_type).__table__
        self._id_column = sa_inspect(entity_type).primary_key[0]

    def _active(self) -> ColumnElement[bool]:
        return self.entity_type.is_active == true()

    def _where(self, predicate: Predicate | None) -> ColumnElement[bool] | None:
        return coerce_clause(predicate, self.entity_type)

    def query(self) -> EntityQuery[EntityType]:
        """An unfiltered query over every row, active or not."""
        return EntityQuery(self.session, self.entity_type)

    # Reads

    async def get_by_id(self, entity_id: IDType) -> EntityType | None:
        statement = select(self.entity_type).where(
            self._id_column == entity_id,
            self._active(),
        )
        result = await self.session.exec(statement)
        return result.first()

    def get_all(
        self,
        predicate: Predicate | None = None,
        order_by: Ordering | None = None,
        include: Include | None = None,
    ) -> EntityQuery[EntityType]:
        """Active entities matching ``predicate``, evaluated on consumption.

        Composes the active filter, the caller's predicate, one eager load
        per include path and the caller's ordering, in that order.
        """
        query = self.query().where(self._active())
        if predicate is not None:
            query = query.where(predicate)
        options = include_options(self.entity_type, include)
        if options:
            query = query.with_options(*options)
        return query.order_by(order_by)

    def find(self, predicate: Predicate) -> EntityQuery[EntityType]:
        return self.get_all(predicate)

    async def exists(self, entity_id: IDType) -> bool:
        statement = (
            select(self._id_column)
            .where(self._id_column == entity_id, self._active())
            .limit(1)
        )
        result = await self.session.exec(statement)
        return result.first() is not None

    async def any(self, predicate: Predicate) -> bool:
        """True if any entity matches, including soft-deleted ones."""
        statement = select(self._id_column).where(self._where(predicate)).limit(1)
        result = await self.session.exec(statement)
        return result.first() is not None

    async def first_or_default(self, predicate: Predicate) -> EntityType | None:
        """First match in store order, including soft-deleted entities."""
        statement = select(self.entity_type).where(self._where(predicate)).limit(1)
        result = await self.session.exec(statement)
        return result.first()

    async def get_paged(
        self,
        predicate: Predicate | None = None,
        page: int = 1,
        page_size: int | None = None,
        order_by: Ordering | None = None,
    ) -> PagedResult[EntityType]:
        """One page of matches, including soft-deleted entities.

        Args:
            predicate: Filter; ``None`` pages over every row
            page: 1-based page number
            page_size: Rows per page, capped at ``max_page_size``
            order_by: Ordering; store order when omitted

        Raises:
            ValueError: If page or page_size is below 1
        """
        if page_size is None:
            page_size = self.settings.default_page_size
        if page < 1:
            msg = f"page must be >= 1, got {page}"
            raise ValueError(msg)
        if page_size < 1:
            msg = f"page_size must be >= 1, got {page_size}"
            raise ValueError(msg)
        page_size = min(page_size, self.settings.max_page_size)

        total_count = await self.count(predicate)
        query = self.query()
        if predicate is not None:
            query = query.where(predicate)
        items = (
            await query.order_by(order_by)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return PagedResult(
            total_count=total_count,
            items=items,
            page=page,
            page_size=page_size,
        )

    async def get_all_with_cache(
        self,
        predicate: Predicate | None = None,
        order_by: Ordering | None = None,
        include: Include | None = None,
    ) -> list[EntityType]:
        """``get_all`` materialized through the query cache.

        The key is the entity type alone unless
        ``cache_key_includes_parameters`` is set, so two differently
        filtered calls inside one cache window share the first result.
        Cached entities are detached copies taken at load time; writes made
        through the session afterwards do not reach them.
        """
        query = self.get_all(predicate, order_by, include)
        if self.cache is None or not self.settings.cache_enabled:
            return await query.all()
        digest = (
            describe_statement(query.statement, include)
            if self.settings.cache_key_includes_parameters
            else None
        )

        async def load() -> list[EntityType]:
            return [detached_copy(entity) for entity in await query.all()]

        return await self.cache.get_or_set(self.entity_name, load, digest)

    # Aggregates

    async def count(self, predicate: Predicate | None = None) -> int:
        statement = select(func.count()).select_from(self._table)
        clause = self._where(predicate)
        if clause is not None:
            statement = statement.where(clause)
        result = await self.session.exec(statement)
        return result.one()

    async def _aggregate(self, function: Any, selector: Selector) -> Any:
        column = resolve_selector(self.entity_type, selector)
        result = await self.session.exec(select(function(column)))
        return result.one()

    async def max(self, selector: Selector) -> Any:
        return await self._aggregate(func.max, selector)

    async def min(self, selector: Selector) -> Any:
        return await self._aggregate(func.min, selector)

    async def sum(self, selector: Selector) -> Any:
        return await self._aggregate(func.sum, selector)

    async def average(self, selector: Selector) -> Any:
        return await self._aggregate(func.avg, selector)

    # Lifecycle writes

    @asynccontextmanager
    async def _write_scope(self, operation: str) -> t.AsyncGenerator[UnitOfWork]:
        self.logger.info(f"{operation} {self.entity_name}")
        try:
            async with self.transactions.transaction(self.session) as uow:
                uow.add_operation(operation, self.entity_name)
                yield uow
        except Exception as e:
            self._increment_metric(operation, success=False)
            self.logger.exception(f"{operation} {self.entity_name} failed: {e}")
            raise
        self._increment_metric(operation)

    async def _attach(self, entity: EntityType) -> EntityType:
        if entity in self.session:
            return entity
        return await self.session.merge(entity)

    async def add(self, entity: EntityType, created_by: UUID | None = None) -> EntityType:
        async with self._write_scope("add"):
            entity.mark_created(self.clock(), created_by)
            self.session.add(entity)
            await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(
        self,
        entity: EntityType,
        modified_by: UUID | None = None,
    ) -> EntityType:
        """Persist the entity's full state; the last writer wins."""
        async with self._write_scope("update"):
            entity.mark_modified(self.clock(), modified_by)
            entity = await self._attach(entity)
            await self.session.flush()
        return entity

    async def soft_delete(
        self,
        entity: EntityType,
        deleted_by: UUID | None,
    ) -> EntityType:
        async with self._write_scope("soft_delete"):
            entity.mark_deleted(self.clock(), deleted_by)
            entity = await self._attach(entity)
            await self.session.flush()
        return entity

    async def restore(
        self,
        entity: EntityType,
        restored_by: UUID | None = None,
    ) -> EntityType:
        if entity.deleted_at is None or entity.is_active:
            self.logger.debug(f"{self.entity_name} is not deleted, nothing to restore")
            return entity
        async with self._write_scope("restore"):
            entity.mark_restored(self.clock(), restored_by)
            entity = await self._attach(entity)
            await self.session.flush()
        return entity

    # Direct writes

    async def execute_raw(self, sql: str, *parameters: Any, **named: Any) -> int:
        """Execute raw SQL and commit; returns the affected row count.

        Positional parameters bind to ``:p0``, ``:p1`` and so on. Nothing
        here enforces the active flag or audit fields.
        """
        params = {f"p{i}": value for i, value in enumerate(parameters)} | named
        connection = await self.session.connection()
        result = await connection.execute(text(sql), params)
        await self.session.commit()
        return result.rowcount

    def _row(self, entity: EntityType) -> dict[str, Any]:
        return {column.key: getattr(entity, column.key) for column in self._table.columns}

    async def bulk_insert(self, entities: Sequence[EntityType]) -> int:
        """Insert all entities in one executemany statement.

        Returns:
            Number of entities submitted
        """
        if not entities:
            return 0
        now = self.clock()
        for entity in entities:
            if entity.created_at is None:
                entity.created_at = now
        rows = [self._row(entity) for entity in entities]
        if all(row[self._id_column.key] is None for row in rows):
            for row in rows:
                del row[self._id_column.key]

        connection = await self.session.connection()
        await connection.execute(insert(self._table), rows)
        await self.session.commit()
        self.logger.info(f"bulk_insert {len(rows)} {self.entity_name}")
        return len(entities)

    async def bulk_update(self, entities: Sequence[EntityType]) -> int:
        """Update all entities by primary key in one executemany statement.

        Returns:
            Number of entities submitted, matched or not
        """
        if not entities:
            return 0
        now = self.clock()
        id_key = self._id_column.key
        rows = []
        for entity in entities:
            entity.modified_at = now
            row = self._row(entity)
            row["pk_value"] = row.pop(id_key)
            rows.append(row)

        statement = update(self._table).where(
            self._id_column == bindparam("pk_value"),
        )
        connection = await self.session.connection()
        await connection.execute(statement, rows)
        await self.session.commit()
        self.logger.info(f"bulk_update {len(rows)} {self.entity_name}")
        return len(entities)

    async def get_metrics(self) -> dict[str, Any]:
        metrics = await super().get_metrics()
        metrics["transactions"] = await self.transactions.get_transaction_stats()
        if self.cache is not None:
            metrics["cache"] = self.cache.get_metrics()
        return metrics
