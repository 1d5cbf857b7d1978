"""Unit of Work Pattern Implementation.

Provides the transaction scope repository writes run in:
- Unit of Work state machine around one ``AsyncSession``
- Automatic rollback on failures, re-raising the original error
- A manager tracking active transactions and a bounded history
"""

import uuid
from enum import Enum

import typing as t
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Any

from arb.cleanup import CleanupMixin

from ._base import UnitOfWorkError


class UnitOfWorkState(Enum):
    """Unit of Work state enumeration."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass
class UnitOfWorkMetrics:
    """Metrics for Unit of Work operations."""

    transaction_id: str
    start_time: datetime
    end_time: datetime | None = None
    state: UnitOfWorkState = UnitOfWorkState.INACTIVE
    operations_count: int = 0
    entity_types: set[str] = field(default_factory=set)
    error_message: str | None = None

    @property
    def duration(self) -> float | None:
        """Get transaction duration in seconds."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class UnitOfWork(CleanupMixin):
    """One transaction on one session.

    The session belongs to the caller; the unit of work begins, commits or
    rolls back its transaction but never closes it.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__()
        self.session = session
        self._state = UnitOfWorkState.INACTIVE
        self._operations: list[dict[str, Any]] = []
        self._metrics = UnitOfWorkMetrics(
            transaction_id=str(uuid.uuid4()),
            start_time=datetime.now(UTC),
        )

    @property
    def state(self) -> UnitOfWorkState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == UnitOfWorkState.ACTIVE

    @property
    def transaction_id(self) -> str:
        return self._metrics.transaction_id

    @property
    def operations(self) -> list[dict[str, Any]]:
        return list(self._operations)

    async def begin(self) -> None:
        """Begin the transaction, joining one the session already started.

        A store failure marks the unit FAILED and propagates unchanged.
        """
        if self._state != UnitOfWorkState.INACTIVE:
            msg = f"Cannot begin transaction in state {self._state}"
            raise UnitOfWorkError(
                msg,
                self.transaction_id,
                self._state,
            )

        try:
            self._state = UnitOfWorkState.ACTIVE
            self._metrics.start_time = datetime.now(UTC)
            if not self.session.in_transaction():
                await self.session.begin()
        except Exception as e:
            self._state = UnitOfWorkState.FAILED
            self._metrics.error_message = str(e)
            raise

    async def commit(self) -> None:
        """Commit the transaction.

        A failing commit rolls back and re-raises the store's exception.
        """
        if self._state != UnitOfWorkState.ACTIVE:
            msg = f"Cannot commit transaction in state {self._state}"
            raise UnitOfWorkError(
                msg,
                self.transaction_id,
                self._state,
            )

        try:
            self._state = UnitOfWorkState.COMMITTING
            await self.session.commit()
            self._state = UnitOfWorkState.COMMITTED
            self._metrics.end_time = datetime.now(UTC)
        except Exception as e:
            self._metrics.error_message = str(e)
            await self.rollback()
            raise

    async def rollback(self) -> None:
        """Rollback the transaction; a no-op once it has completed."""
        if self._state in (
            UnitOfWorkState.INACTIVE,
            UnitOfWorkState.COMMITTED,
            UnitOfWorkState.ROLLED_BACK,
        ):
            return

        try:
            self._state = UnitOfWorkState.ROLLING_BACK
            await self.session.rollback()
            self._state = UnitOfWorkState.ROLLED_BACK
            self._metrics.end_time = datetime.now(UTC)
        except Exception as e:
            self._state = UnitOfWorkState.FAILED
            self._metrics.error_message = str(e)
            msg = f"Failed to rollback transaction: {e}"
            raise UnitOfWorkError(
                msg,
                self.transaction_id,
                self._state,
            ) from e

    def add_operation(self, operation: str, entity_type: str, data: Any = None) -> None:
        """Record an operation for tracking.

        Args:
            operation: Operation name (add, update, soft_delete, restore)
            entity_type: Name of the entity type being written
            data: Optional operation data
        """
        self._operations.append(
            {
                "operation": operation,
                "entity_type": entity_type,
                "timestamp": datetime.now(UTC),
                "data": data,
            },
        )
        self._metrics.operations_count += 1
        self._metrics.entity_types.add(entity_type)

    async def get_metrics(self) -> UnitOfWorkMetrics:
        self._metrics.state = self._state
        return self._metrics

    async def _cleanup_resources(self) -> None:
        if self._state == UnitOfWorkState.ACTIVE:
            await self.rollback()
        self._operations.clear()


class UnitOfWorkManager(CleanupMixin):
    """Creates units of work and keeps their metrics.

    ``transaction()`` is the scope repository writes run in: begin, yield,
    commit; any exception rolls back and propagates unchanged.
    """

    def __init__(self, max_history: int = 1000) -> None:
        super().__init__()
        self._active_transactions: dict[str, UnitOfWork] = {}
        self._completed_transactions: list[UnitOfWorkMetrics] = []
        self._max_completed_history = max_history

    def create_unit_of_work(self, session: AsyncSession) -> UnitOfWork:
        uow = UnitOfWork(session)
        self._active_transactions[uow.transaction_id] = uow
        return uow

    @asynccontextmanager
    async def transaction(self, session: AsyncSession) -> t.AsyncGenerator[UnitOfWork]:
        """Context manager for Unit of Work transactions.

        Args:
            session: Session the transaction runs on

        Yields:
            Unit of Work instance
        """
        uow = self.create_unit_of_work(session)
        try:
            await uow.begin()
            yield uow
            await uow.commit()
        except Exception:
            await uow.rollback()
            raise
        finally:
            await self._complete_transaction(uow)

    async def get_active_transactions(self) -> list[UnitOfWorkMetrics]:
        return [await uow.get_metrics() for uow in self._active_transactions.values()]

    async def get_transaction_history(
        self,
        limit: int = 100,
    ) -> list[UnitOfWorkMetrics]:
        return self._completed_transactions[-limit:]

    async def get_transaction_stats(self) -> dict[str, Any]:
        """Get transaction statistics.

        Returns:
            Dictionary of transaction statistics
        """
        active_count = len(self._active_transactions)
        completed_count = len(self._completed_transactions)

        recent_transactions = self._completed_transactions[-100:]
        success_count = sum(
            1
            for metrics in recent_transactions
            if metrics.state == UnitOfWorkState.COMMITTED
        )
        success_rate = (
            success_count / len(recent_transactions) if recent_transactions else 0.0
        )

        durations = [
            metrics.duration
            for metrics in recent_transactions
            if metrics.duration is not None
        ]
        avg_duration = sum(durations) / len(durations) if durations else 0.0

        return {
            "active_transactions": active_count,
            "completed_transactions": completed_count,
            "success_rate": success_rate,
            "average_duration_seconds": avg_duration,
            "max_history_size": self._max_completed_history,
        }

    async def _complete_transaction(self, uow: UnitOfWork) -> None:
        self._active_transactions.pop(uow.transaction_id, None)

        metrics = await uow.get_metrics()
        self._completed_transactions.append(metrics)

        if len(self._completed_transactions) > self._max_completed_history:
            self._completed_transactions = self._completed_transactions[
                -self._max_completed_history :
            ]

        await uow.cleanup()

    async def _cleanup_resources(self) -> None:
        for uow in list(self._active_transactions.values()):
            with suppress(UnitOfWorkError):
                await uow.rollback()
            await uow.cleanup()

        self._active_transactions.clear()
        self._completed_transactions.clear()
