from .base import BaseDriver
from .mysql import MysqlDriver
from .postgres import PostgresDriver
from .sqlite import SQLiteDriver

__all__ = (
    "BaseDriver",
    "MysqlDriver",
    "PostgresDriver",
    "SQLiteDriver",
)
