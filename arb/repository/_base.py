"""Repository base classes and interface.

Provides the shared pieces every repository implementation builds on:
- Exception hierarchy for repository and transaction failures
- Repository settings (cache window, paging limits)
- The repository protocol and an abstract base with metrics tracking
"""

from abc import ABC, abstractmethod
from enum import Enum

import typing as t
from dataclasses import dataclass
from pydantic import Field, model_validator
from typing import Any

from arb.cleanup import CleanupMixin
from arb.config import Settings
from arb.depends import depends
from arb.logger import Logger


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class EntityNotFoundError(RepositoryError):
    """Raised when an active entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            entity_type=entity_type,
            operation="get_by_id",
        )
        self.entity_id = entity_id


class UnitOfWorkError(RepositoryError):
    """Raised on an invalid transaction state transition."""

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        state: Any = None,
    ) -> None:
        super().__init__(message, operation="unit_of_work")
        self.transaction_id = transaction_id
        self.state = state


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class SortCriteria:
    """Sort by a named field."""

    field: str
    direction: SortDirection = SortDirection.ASC


class RepositorySettings(Settings):
    """Repository configuration settings."""

    # Caching settings
    cache_enabled: bool = True
    cache_ttl: float = Field(default=300, gt=0, description="Cache TTL in seconds")
    cache_prefix: str = Field(default="repo", description="Cache key prefix")
    cache_key_includes_parameters: bool = Field(
        default=False,
        description="Append a digest of filter, ordering and includes to cache keys",
    )

    # Query settings
    default_page_size: int = Field(default=50, ge=1)
    max_page_size: int = Field(default=1000, ge=1)

    @model_validator(mode="after")
    def validate_page_size(self) -> t.Self:
        if self.default_page_size > self.max_page_size:
            msg = "default_page_size cannot exceed max_page_size"
            raise ValueError(msg)
        return self


@t.runtime_checkable
class RepositoryProtocol[EntityType, IDType](t.Protocol):
    """Protocol defining the repository interface."""

    async def get_by_id(self, entity_id: IDType) -> EntityType | None: ...

    async def add(self, entity: EntityType, created_by: Any = None) -> EntityType: ...

    async def update(
        self,
        entity: EntityType,
        modified_by: Any = None,
    ) -> EntityType: ...

    async def soft_delete(self, entity: EntityType, deleted_by: Any) -> EntityType: ...

    async def restore(
        self,
        entity: EntityType,
        restored_by: Any = None,
    ) -> EntityType: ...

    async def exists(self, entity_id: IDType) -> bool: ...

    async def count(self, predicate: Any = None) -> int: ...


class RepositoryBase[EntityType, IDType](CleanupMixin, ABC):
    """Abstract base class for repositories.

    Provides common functionality for all repository implementations:
    - Settings and logger resolution
    - Per-operation success/error metrics
    - Resource cleanup
    """

    def __init__(
        self,
        entity_type: type[EntityType],
        settings: RepositorySettings | None = None,
        logger: Any = None,
    ) -> None:
        super().__init__()
        self.entity_type = entity_type
        self.entity_name = getattr(entity_type, "__name__", str(entity_type))
        self.settings = settings or depends.get_sync(RepositorySettings)
        self.logger = logger or depends.get_sync(Logger)
        self._metrics: dict[str, int] = {}

    def _increment_metric(self, operation: str, success: bool = True) -> None:
        metric_key = f"{operation}_{'success' if success else 'error'}"
        self._metrics[metric_key] = self._metrics.get(metric_key, 0) + 1

    @abstractmethod
    async def get_by_id(self, entity_id: IDType) -> EntityType | None:
        """Get an active entity by ID.

        Args:
            entity_id: Unique identifier for the entity

        Returns:
            Entity if found and active, None otherwise
        """

    async def get_by_id_or_raise(self, entity_id: IDType) -> EntityType:
        """Get an active entity by ID, raise if not found.

        Args:
            entity_id: Unique identifier for the entity

        Returns:
            Entity if found and active

        Raises:
            EntityNotFoundError: If no active entity has that ID
        """
        entity = await self.get_by_id(entity_id)
        if entity is None:
            raise EntityNotFoundError(self.entity_name, entity_id)
        return entity

    @abstractmethod
    async def add(self, entity: EntityType, created_by: Any = None) -> EntityType:
        """Persist a new entity.

        Args:
            entity: Entity to create
            created_by: Optional actor recorded on the entity

        Returns:
            Created entity with any generated fields
        """

    @abstractmethod
    async def update(self, entity: EntityType, modified_by: Any = None) -> EntityType:
        """Persist the full state of an existing entity."""

    @abstractmethod
    async def soft_delete(self, entity: EntityType, deleted_by: Any) -> EntityType:
        """Mark an entity deleted without removing its row."""

    @abstractmethod
    async def restore(self, entity: EntityType, restored_by: Any = None) -> EntityType:
        """Undo a soft delete. Restoring an active entity changes nothing."""

    @abstractmethod
    async def count(self, predicate: Any = None) -> int:
        """Count entities matching a predicate, active or not."""

    async def exists(self, entity_id: IDType) -> bool:
        """Check if an active entity with that ID exists."""
        entity = await self.get_by_id(entity_id)
        return entity is not None

    async def get_metrics(self) -> dict[str, Any]:
        """Get repository operation metrics.

        Returns:
            Dictionary of metrics
        """
        return {
            "entity_type": self.entity_name,
            "cache_enabled": self.settings.cache_enabled,
            "operations": self._metrics.copy(),
            "settings": {
                "default_page_size": self.settings.default_page_size,
                "max_page_size": self.settings.max_page_size,
                "cache_ttl": self.settings.cache_ttl,
            },
        }

    async def _cleanup_resources(self) -> None:
        self._metrics.clear()


depends.set(RepositorySettings)
