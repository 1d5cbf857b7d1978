"""Tests for repository settings, errors and the abstract base."""

from unittest.mock import MagicMock

import pytest
import typing as t
from pydantic import ValidationError

from arb.repository import (
    EntityNotFoundError,
    RepositoryBase,
    RepositoryError,
    RepositoryProtocol,
    RepositorySettings,
    UnitOfWorkError,
)


class InMemoryRepository(RepositoryBase[dict[str, t.Any], int]):
    def __init__(self, **kwargs: t.Any) -> None:
        super().__init__(dict, **kwargs)
        self.rows: dict[int, dict[str, t.Any]] = {}

    async def get_by_id(self, entity_id: int) -> dict[str, t.Any] | None:
        row = self.rows.get(entity_id)
        return row if row and row.get("is_active", True) else None

    async def add(self, entity: dict[str, t.Any], created_by: t.Any = None) -> t.Any:
        self.rows[entity["id"]] = entity
        self._increment_metric("add")
        return entity

    async def update(self, entity: dict[str, t.Any], modified_by: t.Any = None) -> t.Any:
        return entity

    async def soft_delete(self, entity: dict[str, t.Any], deleted_by: t.Any) -> t.Any:
        entity["is_active"] = False
        return entity

    async def restore(self, entity: dict[str, t.Any], restored_by: t.Any = None) -> t.Any:
        entity["is_active"] = True
        return entity

    async def count(self, predicate: t.Any = None) -> int:
        return len(self.rows)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository(settings=RepositorySettings(), logger=MagicMock())


@pytest.mark.unit
class TestRepositorySettings:
    def test_defaults(self) -> None:
        settings = RepositorySettings()

        assert settings.cache_enabled
        assert settings.cache_ttl == 300
        assert settings.cache_prefix == "repo"
        assert not settings.cache_key_includes_parameters
        assert settings.default_page_size == 50
        assert settings.max_page_size == 1000

    def test_default_page_size_cannot_exceed_max(self) -> None:
        with pytest.raises(ValidationError, match="cannot exceed max_page_size"):
            RepositorySettings(default_page_size=200, max_page_size=100)

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_cache_ttl_must_be_positive(self, ttl: float) -> None:
        with pytest.raises(ValidationError):
            RepositorySettings(cache_ttl=ttl)


@pytest.mark.unit
class TestErrors:
    def test_not_found_carries_context(self) -> None:
        error = EntityNotFoundError("Product", 7)

        assert str(error) == "Product with ID 7 not found"
        assert error.entity_type == "Product"
        assert error.entity_id == 7
        assert error.operation == "get_by_id"
        assert isinstance(error, RepositoryError)

    def test_unit_of_work_error(self) -> None:
        error = UnitOfWorkError("bad state", "tx-1", "active")

        assert error.transaction_id == "tx-1"
        assert error.state == "active"
        assert error.operation == "unit_of_work"


@pytest.mark.unit
class TestRepositoryBase:
    def test_satisfies_protocol(self, repository: InMemoryRepository) -> None:
        assert isinstance(repository, RepositoryProtocol)

    @pytest.mark.asyncio
    async def test_get_by_id_or_raise(self, repository: InMemoryRepository) -> None:
        await repository.add({"id": 1})

        assert await repository.get_by_id_or_raise(1) == {"id": 1}
        with pytest.raises(EntityNotFoundError, match="dict with ID 2 not found"):
            await repository.get_by_id_or_raise(2)

    @pytest.mark.asyncio
    async def test_exists_ignores_inactive(self, repository: InMemoryRepository) -> None:
        row = await repository.add({"id": 1})
        assert await repository.exists(1)

        await repository.soft_delete(row, deleted_by=None)

        assert not await repository.exists(1)

    @pytest.mark.asyncio
    async def test_metrics(self, repository: InMemoryRepository) -> None:
        await repository.add({"id": 1})
        repository._increment_metric("update", success=False)

        metrics = await repository.get_metrics()

        assert metrics["entity_type"] == "dict"
        assert metrics["operations"] == {"add_success": 1, "update_error": 1}
        assert metrics["settings"]["max_page_size"] == 1000

    @pytest.mark.asyncio
    async def test_cleanup_clears_metrics(self, repository: InMemoryRepository) -> None:
        await repository.add({"id": 1})

        await repository.cleanup()

        assert (await repository.get_metrics())["operations"] == {}
        assert repository.cleaned_up
