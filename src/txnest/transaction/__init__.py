"""
Transaction strategies and the pieces they are built from.

The functions running work in a transaction live in
`txnest.transaction.engine` and are exported from `txnest`.
"""

from .interfaces import (
    IsolationLevel,
    NestedTransactionDisabled,
    TransactionError,
    TransactionOptions,
    TransactionStrategy,
)
from .savepoint import Savepoint
from .strategy import FlatStrategy, NestedStrategy, NoopStrategy

__all__ = [
    "FlatStrategy",
    "IsolationLevel",
    "NestedStrategy",
    "NestedTransactionDisabled",
    "NoopStrategy",
    "Savepoint",
    "TransactionError",
    "TransactionOptions",
    "TransactionStrategy",
]
