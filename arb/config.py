import os
import sys
from pathlib import Path

import typing as t
import yaml
from anyio import Path as AsyncPath
from inflection import underscore
from pydantic import BaseModel
from pydantic_settings import SettingsConfigDict

_testing: bool = "pytest" in sys.modules or os.getenv("TESTING", "").lower() == "true"

root_path: Path = Path(os.getenv("ARB_ROOT", Path.cwd()))
settings_path: AsyncPath = AsyncPath(root_path / "settings")


def deep_update(*dicts: dict[str, t.Any]) -> dict[str, t.Any]:
    """Deep merge multiple dictionaries."""
    result: dict[str, t.Any] = {}
    for d in dicts:
        if isinstance(d, dict):
            for key, value in d.items():
                if (
                    key in result
                    and isinstance(result[key], dict)
                    and isinstance(value, dict)
                ):
                    result[key] = deep_update(result[key], value)
                else:
                    result[key] = value
    return result


def settings_name(settings_cls: type[BaseModel]) -> str:
    """Name of the yaml file backing a settings class.

    ``RepositorySettings`` reads ``settings/repository.yaml``.
    """
    name = settings_cls.__name__.removesuffix("Settings") or settings_cls.__name__
    return underscore(name)


class PydanticSettingsProtocol(t.Protocol):
    settings_cls: type[BaseModel]
    init_kwargs: dict[str, t.Any]

    async def __call__(self) -> dict[str, t.Any]: ...


class PydanticSettingsSource:
    def __init__(
        self,
        settings_cls: type[BaseModel],
        init_kwargs: dict[str, t.Any] | None = None,
    ) -> None:
        self.settings_cls = settings_cls
        self.init_kwargs = init_kwargs or {}

    async def __call__(self) -> dict[str, t.Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class InitSettingsSource(PydanticSettingsSource):
    async def __call__(self) -> dict[str, t.Any]:
        return self.init_kwargs


class YamlSettingsSource(PydanticSettingsSource):
    """Loads ``settings/<name>.yaml`` for a settings class if it exists."""

    def __init__(
        self,
        settings_cls: type[BaseModel],
        init_kwargs: dict[str, t.Any] | None = None,
        path: AsyncPath | None = None,
    ) -> None:
        super().__init__(settings_cls, init_kwargs)
        self.adapter_name = settings_name(settings_cls)
        self.path = path or settings_path

    @property
    def yaml_path(self) -> AsyncPath:
        return self.path / f"{self.adapter_name}.yaml"

    async def __call__(self) -> dict[str, t.Any]:
        yaml_path = self.yaml_path
        if not await yaml_path.exists():
            return {}
        loaded = yaml.safe_load(await yaml_path.read_text())
        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            msg = f"{yaml_path} must contain a mapping, got {type(loaded).__name__}"
            raise ValueError(msg)
        return {k: v for k, v in loaded.items() if v is not None}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(path={self.yaml_path})"


class Settings(BaseModel):
    model_config = SettingsConfigDict(
        extra="allow",
        arbitrary_types_allowed=True,
        validate_default=True,
        protected_namespaces=("model_", "settings_"),
    )

    @classmethod
    async def create_async(
        cls,
        _settings_path: AsyncPath | None = None,
        **values: t.Any,
    ) -> t.Self:
        """Create Settings with the yaml overlay applied.

        Explicit keyword values win over the yaml file, which wins over
        field defaults.
        """
        sources = cls.settings_customize_sources(
            settings_cls=cls,
            init_source=InitSettingsSource(cls, init_kwargs=values),
            yaml_source=YamlSettingsSource(cls, path=_settings_path),
        )
        build_settings = deep_update(*reversed([await source() for source in sources]))
        return cls(**build_settings)

    @classmethod
    def settings_customize_sources(
        cls,
        settings_cls: type["Settings"],
        init_source: PydanticSettingsProtocol,
        yaml_source: PydanticSettingsProtocol,
    ) -> tuple[PydanticSettingsProtocol, ...]:
        return (init_source, yaml_source)
