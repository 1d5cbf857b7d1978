from .depends import Inject, depends
from .logger import Logger

__all__ = ["Inject", "Logger", "depends"]
