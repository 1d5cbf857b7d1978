"""Resource cleanup for arb components.

Sessions, engines and cache clients are registered on the component that
owns them and released together through ``cleanup()`` or ``async with``.
"""

import logging

import asyncio
import typing as t

logger = logging.getLogger(__name__)

_RELEASE_METHODS = ("cleanup", "close", "aclose", "dispose")


class CleanupMixin:
    """Mixin tracking owned resources and releasing them once."""

    def __init__(self) -> None:
        self._resources: list[t.Any] = []
        self._cleaned_up = False
        self._cleanup_lock: asyncio.Lock | None = None

    @property
    def cleaned_up(self) -> bool:
        return self._cleaned_up

    def register_resource(self, resource: t.Any) -> None:
        """Register a resource to be released on cleanup."""
        if resource is not None and resource not in self._resources:
            self._resources.append(resource)

    async def cleanup_resource(self, resource: t.Any) -> None:
        """Release one resource with the first release method it offers."""
        for method_name in _RELEASE_METHODS:
            method = getattr(resource, method_name, None)
            if method is None:
                continue
            result = method()
            if asyncio.iscoroutine(result):
                await result
            logger.debug(f"Released {type(resource).__name__} using {method_name}()")
            return

    async def _cleanup_resources(self) -> None:
        """Hook for subclasses owning state beyond registered resources."""

    async def cleanup(self) -> None:
        """Release all registered resources; later calls are no-ops."""
        if self._cleanup_lock is None:
            self._cleanup_lock = asyncio.Lock()

        async with self._cleanup_lock:
            if self._cleaned_up:
                return

            await self._cleanup_resources()

            errors = []
            for resource in reversed(self._resources):
                try:
                    await self.cleanup_resource(resource)
                except Exception as e:
                    errors.append(f"{type(resource).__name__}: {e}")

            self._resources.clear()
            self._cleaned_up = True

            if errors:
                logger.warning(f"Resource cleanup errors: {'; '.join(errors)}")

    async def __aenter__(self) -> t.Self:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        await self.cleanup()
