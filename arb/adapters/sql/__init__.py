from ._base import SqlBase, SqlBaseSettings, SqlProtocol
from .sqlite import Sql, SqlSettings

__all__ = ["Sql", "SqlBase", "SqlBaseSettings", "SqlProtocol", "SqlSettings"]
