"""Tests for the depends module."""

import pytest

from arb.depends import Inject, depends
from arb.logger import Logger
from arb.repository import QueryCache, RepositorySettings


class SampleService:
    def __init__(self, name: str = "test") -> None:
        self.name = name


@pytest.mark.unit
class TestDepends:
    @pytest.mark.asyncio
    async def test_set_get(self) -> None:
        service = SampleService(name="test_service")
        depends.set(SampleService, service)

        result = await depends.get(SampleService)

        assert result is service
        assert depends.get_sync(SampleService) is service

    def test_set_without_instance(self) -> None:
        instance = depends.set(SampleService)

        assert isinstance(instance, SampleService)
        assert depends.get_sync(SampleService) is instance

    def test_qualified_instances(self) -> None:
        primary = SampleService(name="primary")
        replica = SampleService(name="replica")
        depends.set(SampleService, primary, module="primary")
        depends.set(SampleService, replica, module="replica")

        assert depends.get_sync(SampleService, "primary") is primary
        assert depends.get_sync(SampleService, "replica") is replica

    def test_inject_sync(self) -> None:
        service = SampleService(name="inject_service")
        depends.set(SampleService, service)

        @depends.inject
        def service_name(service: Inject[SampleService]) -> str:
            return service.name

        assert service_name() == "inject_service"

    @pytest.mark.asyncio
    async def test_inject_async(self) -> None:
        service = SampleService(name="inject_async_service")
        depends.set(SampleService, service)

        @depends.inject
        async def service_name(service: Inject[SampleService]) -> str:
            return service.name

        assert await service_name() == "inject_async_service"

    def test_process_defaults_registered(self) -> None:
        assert isinstance(depends.get_sync(Logger), Logger)
        assert isinstance(depends.get_sync(RepositorySettings), RepositorySettings)
        assert isinstance(depends.get_sync(QueryCache), QueryCache)
