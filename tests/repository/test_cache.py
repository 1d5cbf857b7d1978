"""Tests for the repository query cache."""

import asyncio
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest

from arb.adapters.cache import Cache
from arb.repository import QueryCache, RepositorySettings
from arb.testing import create_test_query_cache


class CountingLoader:
    def __init__(self, result: list[int], delay: float = 0.0) -> None:
        self.result = result
        self.delay = delay
        self.calls = 0

    async def __call__(self) -> list[int]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


@pytest.fixture
async def query_cache() -> AsyncGenerator[QueryCache]:
    cache = create_test_query_cache()
    yield cache
    await cache.cleanup()


@pytest.mark.unit
class TestQueryCacheKeys:
    def test_type_only_key(self) -> None:
        cache = create_test_query_cache()

        assert cache.build_key("Product") == "repo:Product:get_all_with_cache"

    def test_digest_appended(self) -> None:
        cache = create_test_query_cache(cache_prefix="shop")

        assert cache.build_key("Product", "abc") == (
            "shop:Product:get_all_with_cache:abc"
        )


@pytest.mark.unit
class TestQueryCacheReads:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self, query_cache: QueryCache) -> None:
        loader = CountingLoader([1, 2])

        first = await query_cache.get_or_set("Product", loader)
        second = await query_cache.get_or_set("Product", loader)

        assert first == second == [1, 2]
        assert loader.calls == 1
        metrics = query_cache.get_metrics()
        assert metrics["hits"] == 1
        assert metrics["misses"] == 1
        assert metrics["writes"] == 1
        assert metrics["hit_rate"] == 0.5

    @pytest.mark.asyncio
    async def test_empty_result_is_cached(self, query_cache: QueryCache) -> None:
        loader = CountingLoader([])

        await query_cache.get_or_set("Product", loader)
        await query_cache.get_or_set("Product", loader)

        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_digests_are_separate_entries(
        self,
        query_cache: QueryCache,
    ) -> None:
        await query_cache.get_or_set("Product", CountingLoader([1]), "a")
        result = await query_cache.get_or_set("Product", CountingLoader([2]), "b")

        assert result == [2]

    @pytest.mark.asyncio
    async def test_concurrent_misses_load_once(self, query_cache: QueryCache) -> None:
        loader = CountingLoader([1, 2, 3], delay=0.05)

        results = await asyncio.gather(
            *(query_cache.get_or_set("Product", loader) for _ in range(5)),
        )

        assert loader.calls == 1
        assert all(result == [1, 2, 3] for result in results)

    @pytest.mark.asyncio
    async def test_callers_get_copies(self, query_cache: QueryCache) -> None:
        first = await query_cache.get_or_set("Product", CountingLoader([1, 2]))
        first.append(3)

        second = await query_cache.get_or_set("Product", CountingLoader([9]))

        assert second == [1, 2]

    @pytest.mark.asyncio
    async def test_invalidate(self, query_cache: QueryCache) -> None:
        await query_cache.get_or_set("Product", CountingLoader([1]))
        await query_cache.get_or_set("Product", CountingLoader([1]), "digest")

        removed = await query_cache.invalidate("Product")
        result = await query_cache.get_or_set("Product", CountingLoader([2]))

        assert removed == 2
        assert result == [2]
        assert query_cache.get_metrics()["invalidations"] == 2

    @pytest.mark.asyncio
    async def test_invalidate_unknown_entity(self, query_cache: QueryCache) -> None:
        assert await query_cache.invalidate("Order") == 0

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self) -> None:
        query_cache = create_test_query_cache(cache_ttl=0.05)
        loader = CountingLoader([1])

        await query_cache.get_or_set("Product", loader)
        await asyncio.sleep(0.2)
        await query_cache.get_or_set("Product", loader)

        assert loader.calls == 2
        await query_cache.cleanup()


@pytest.mark.unit
class TestQueryCacheFailures:
    @pytest.mark.asyncio
    async def test_cache_errors_fall_back_to_loader(self) -> None:
        broken = AsyncMock()
        broken.get.side_effect = ConnectionError("cache down")
        broken.set.side_effect = ConnectionError("cache down")
        logger = MagicMock()
        query_cache = QueryCache(
            cache=broken,
            settings=RepositorySettings(),
            logger=logger,
        )

        result = await query_cache.get_or_set("Product", CountingLoader([7]))

        assert result == [7]
        assert query_cache.get_metrics()["errors"] == 3
        assert logger.warning.call_count == 3

    @pytest.mark.asyncio
    async def test_owned_cache_released_on_cleanup(self) -> None:
        query_cache = QueryCache(settings=RepositorySettings(), logger=MagicMock())
        assert isinstance(query_cache.cache, Cache)

        await query_cache.cleanup()

        assert query_cache.cache.cleaned_up
