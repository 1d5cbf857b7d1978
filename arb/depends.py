import typing as t
from bevy import Inject, auto_inject, get_container


class Depends:
    """Dependency wiring for arb.

    Components accept their collaborators explicitly. The container only
    supplies process defaults (settings, logger) when a caller passes none.
    """

    @staticmethod
    def inject(func: t.Callable[..., t.Any]) -> t.Callable[..., t.Any]:
        """Decorator injecting ``Inject[...]`` annotated parameters."""
        return t.cast("t.Callable[..., t.Any]", auto_inject(func))

    @staticmethod
    def set(class_: t.Any, instance: t.Any = None, module: str | None = None) -> t.Any:
        """Register an instance for ``class_``, building a default one if needed."""
        if instance is None:
            instance = class_()
        get_container().add(class_, instance, qualifier=module)
        return instance

    @staticmethod
    def get_sync(category: t.Any, module: str | None = None) -> t.Any:
        result = get_container().get(category, qualifier=module)
        if isinstance(result, tuple):
            if len(result) != 1:
                msg = f"Dependency {category!r} is not registered as a single instance"
                raise RuntimeError(msg)
            return result[0]
        return result

    async def get(self, category: t.Any, module: str | None = None) -> t.Any:
        return self.get_sync(category, module)


depends = Depends()

__all__ = ["Depends", "Inject", "depends", "get_container"]
