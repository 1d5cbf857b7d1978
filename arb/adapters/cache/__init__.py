from ._base import CacheBase, CacheBaseSettings, CacheProtocol
from .memory import Cache, CacheSettings

__all__ = ["Cache", "CacheBase", "CacheBaseSettings", "CacheProtocol", "CacheSettings"]
