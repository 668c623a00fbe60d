from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from txnest.exception import ConfigurationError, TxnestError

if TYPE_CHECKING:
    from txnest.connection import Connection


class IsolationLevel(Enum):
    """SQL transaction isolation levels"""

    NONE = "NONE"
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"

    @classmethod
    def parse(
        cls, level: Union[IsolationLevel, str, None]
    ) -> IsolationLevel:
        """Resolve an isolation level from a member, a name or SQL text.

        ``"read-committed"``, ``"read_committed"`` and ``"READ COMMITTED"``
        all resolve to ``IsolationLevel.READ_COMMITTED``. ``None`` resolves
        to ``IsolationLevel.NONE``.
        """
        if level is None:
            return cls.NONE
        if isinstance(level, cls):
            return level
        if isinstance(level, str):
            key = level.strip().upper().replace("-", "_").replace(" ", "_")
            if key in cls.__members__:
                return cls.__members__[key]
        raise ConfigurationError(f"Unknown isolation level: {level!r}")


class TransactionError(TxnestError):
    """Base exception for transaction errors"""

    pass


class NestedTransactionDisabled(ConfigurationError, TransactionError):
    """Raised when savepoints are disabled but a nested transaction
    was requested"""

    pass


@dataclass(frozen=True)
class TransactionOptions:
    isolation_level: Optional[IsolationLevel] = None
    read_only: Optional[bool] = None
    savepoints: bool = True


class TransactionStrategy(ABC):
    """Policy deciding what beginning, committing and rolling back a
    transactional scope means for a connection.

    Each operation receives the connection and the options of the scope and
    returns the connection the caller should keep using.
    """

    @abstractmethod
    def begin(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection: ...

    @abstractmethod
    def commit(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection: ...

    @abstractmethod
    def rollback(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection: ...
