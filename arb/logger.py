"""Loguru-based logger for arb."""

import logging
import sys
from inspect import currentframe

import typing as t
from loguru._logger import Core as _Core
from loguru._logger import Logger as _Logger

from .config import Settings, _testing
from .depends import depends


class LoggerSettings(Settings):
    log_level: str = "INFO"
    serialize: bool = False
    colorize: bool = True
    format: dict[str, str] = {
        "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
        "level": " <level>{level:>8}</level>",
        "sep": " <b><w>in</w></b> ",
        "name": "<b>{extra[mod_name]:>20}</b>",
        "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
        "message": "  <level>{message}</level>",
    }

    @property
    def sink_settings(self) -> dict[str, t.Any]:
        return {
            "format": "".join(self.format.values()),
            "level": self.log_level.upper(),
            "serialize": self.serialize,
            "colorize": self.colorize,
            "backtrace": False,
            "diagnose": False,
        }


class Logger(_Logger):  # type: ignore[misc]
    """Loguru logger with its own core, independent of ``loguru.logger``."""

    def __init__(self, settings: LoggerSettings | None = None) -> None:
        _Logger.__init__(  # type: ignore[no-untyped-call]
            self,
            core=_Core(),  # type: ignore[no-untyped-call]
            exception=None,
            depth=0,
            record=False,
            lazy=False,
            colors=False,
            raw=False,
            capture=True,
            patchers=[],
            extra={},
        )
        self.settings = settings or LoggerSettings()
        self._sink_ids: list[int] = []

    def init(self) -> None:
        self.remove()  # type: ignore[no-untyped-call]
        self._sink_ids.clear()
        if _testing:
            self.configure(handlers=[])  # type: ignore[no-untyped-call]
            return

        def _patch(record: dict[str, t.Any]) -> None:
            record["extra"]["mod_name"] = self._patch_name(record)

        self.configure(patcher=_patch)  # type: ignore[no-untyped-call]
        sink_id = self.add(  # type: ignore[no-untyped-call]
            sys.stderr,
            **self.settings.sink_settings,
        )
        self._sink_ids.append(sink_id)

    @staticmethod
    def _patch_name(record: dict[str, t.Any]) -> str:
        mod_parts = record["name"].split(".")
        mod_name = ".".join(mod_parts[:-1])
        if len(mod_parts) > 3:
            mod_name = ".".join(mod_parts[1:-1])
        return mod_name.replace("_", "") or record["name"]

    def close(self) -> None:
        self.remove()  # type: ignore[no-untyped-call]
        self._sink_ids.clear()


class InterceptHandler(logging.Handler):
    """Routes standard library log records into the registered Logger."""

    def emit(self, record: logging.LogRecord) -> None:
        logger_instance = depends.get_sync(Logger)

        try:
            level = logger_instance.level(record.levelname).name  # type: ignore[no-untyped-call]
        except ValueError:
            level = record.levelno

        frame, depth = (currentframe(), 0)
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger_instance.opt(depth=depth, exception=record.exc_info).log(  # type: ignore[no-untyped-call]
            level,
            record.getMessage(),
        )


def configure_stdlib_logging_interception() -> None:
    """Route standard library logging (SQLAlchemy included) through Loguru."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


depends.set(Logger).init()
