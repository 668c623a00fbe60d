from importlib.metadata import version

from .config import Settings, set_default_isolation_level
from .connection import (
    Connection,
    close,
    connect,
    is_rollback_only,
    make_connection,
    mark_rollback_only,
    open,
    unmark_rollback_only,
)
from .convert import Binder
from .datasource import DataSource, PsycopgPoolDataSource
from .dbspec import resolve_dbspec
from .exception import (
    BatchError,
    ClosedCursorError,
    ConfigurationError,
    DriverError,
    TxnestError,
)
from .hydrator import Hydrator
from .query import (
    QueryResult,
    RowCursor,
    execute,
    execute_prepared,
    make_prepared_statement,
    query,
    with_query,
)
from .registry import DriverRegistry, register_driver
from .statement import UNKNOWN_COUNT, PreparedStatement
from .transaction import (
    FlatStrategy,
    IsolationLevel,
    NestedStrategy,
    NestedTransactionDisabled,
    NoopStrategy,
    TransactionError,
    TransactionStrategy,
)
from .transaction.engine import (
    atomic,
    call_in_transaction,
    run_in_transaction,
    transaction,
)

__version__ = version("txnest")

__all__ = (
    "atomic",
    "call_in_transaction",
    "close",
    "connect",
    "execute",
    "execute_prepared",
    "is_rollback_only",
    "make_connection",
    "make_prepared_statement",
    "mark_rollback_only",
    "open",
    "query",
    "register_driver",
    "resolve_dbspec",
    "run_in_transaction",
    "set_default_isolation_level",
    "transaction",
    "unmark_rollback_only",
    "with_query",
    "BatchError",
    "Binder",
    "ClosedCursorError",
    "ConfigurationError",
    "Connection",
    "DataSource",
    "DriverError",
    "DriverRegistry",
    "FlatStrategy",
    "Hydrator",
    "IsolationLevel",
    "NestedStrategy",
    "NestedTransactionDisabled",
    "NoopStrategy",
    "PreparedStatement",
    "PsycopgPoolDataSource",
    "QueryResult",
    "RowCursor",
    "Settings",
    "TransactionError",
    "TransactionStrategy",
    "TxnestError",
    "UNKNOWN_COUNT",
)
