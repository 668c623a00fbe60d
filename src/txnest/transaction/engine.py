from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import wraps
from typing import (
    TYPE_CHECKING,
    Callable,
    Iterator,
    Optional,
    TypeVar,
    Union,
)

from txnest.config import Settings
from txnest.exception import chain_cleanup_error

from .interfaces import (
    IsolationLevel,
    NestedTransactionDisabled,
    TransactionOptions,
    TransactionStrategy,
)

if TYPE_CHECKING:
    from txnest.connection import Connection

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolve_strategy(
    conn: Connection, strategy: Optional[TransactionStrategy] = None
) -> TransactionStrategy:
    """Pick the strategy for a scope: the one passed in, else the one
    attached to the connection, else the process default."""
    return strategy or conn.strategy or Settings().default_strategy


@contextmanager
def transaction(
    conn: Connection,
    *,
    isolation_level: Union[IsolationLevel, str, None] = None,
    read_only: Optional[bool] = None,
    savepoints: bool = True,
    strategy: Optional[TransactionStrategy] = None,
) -> Iterator[Connection]:
    """Run the block in a transaction, or in a savepoint when the
    connection already is in one.

    The scope commits (or releases its savepoint) when the block completes
    and rolls back when it raises. The exception raised in the block always
    propagates, even if rolling back fails as well.

    Example:

    ```python
    with transaction(conn):
        execute(conn, "UPDATE accounts SET balance = balance - 10")
        with transaction(conn):
            execute(conn, "INSERT INTO audit VALUES ('debit')")
    ```

    Args:
        conn (Connection): The connection
        isolation_level (Union[IsolationLevel, str], optional): Isolation
            level of the transaction. Only applies when a transaction is
            started. Defaults to `None`.
        read_only (bool, optional): Access mode of the transaction. Only
            applies when a transaction is started. Defaults to `None`.
        savepoints (bool, optional): Whether a nested scope may use a
            savepoint. Defaults to `True`.
        strategy (TransactionStrategy, optional): Overrides the strategy of
            the connection. Defaults to `None`.

    Raises:
        NestedTransactionDisabled: If ``savepoints`` is `False` and the
            connection already is in a transaction
        TransactionError: If a nested scope asks for an isolation level or
            access mode different from the active transaction

    Yields:
        Connection: The connection to use inside the block
    """
    if conn.in_transaction and not savepoints:
        raise NestedTransactionDisabled("Savepoints explicitly disabled.")

    options = TransactionOptions(
        isolation_level=(
            None
            if isolation_level is None
            else IsolationLevel.parse(isolation_level)
        ),
        read_only=read_only,
        savepoints=savepoints,
    )
    strategy = resolve_strategy(conn, strategy)
    scoped = strategy.begin(conn, options)
    try:
        yield scoped
    except BaseException as error:
        try:
            strategy.rollback(scoped, options)
        except Exception as rollback_error:
            logger.error(
                "Error rolling back %s after failure: %s",
                scoped,
                rollback_error,
            )
            chain_cleanup_error(error, rollback_error)
        raise
    strategy.commit(scoped, options)


def run_in_transaction(
    conn: Connection,
    work: Callable[[Connection], T],
    *,
    isolation_level: Union[IsolationLevel, str, None] = None,
    read_only: Optional[bool] = None,
    savepoints: bool = True,
    strategy: Optional[TransactionStrategy] = None,
) -> T:
    """Call ``work`` with the connection inside a transaction and return
    its result. See `transaction` for the options."""
    with transaction(
        conn,
        isolation_level=isolation_level,
        read_only=read_only,
        savepoints=savepoints,
        strategy=strategy,
    ) as scoped:
        return work(scoped)


call_in_transaction = run_in_transaction


def atomic(
    func: Optional[Callable[..., T]] = None,
    *,
    isolation_level: Union[IsolationLevel, str, None] = None,
    read_only: Optional[bool] = None,
    savepoints: bool = True,
    strategy: Optional[TransactionStrategy] = None,
):
    """Decorator running a function in a transaction. The function must
    take the connection as its first argument.

    Example:

    ```python
    @atomic
    def transfer(conn, source, target, amount):
        ...

    @atomic(isolation_level="serializable")
    def close_books(conn):
        ...
    ```
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(conn: Connection, *args, **kwargs):
            with transaction(
                conn,
                isolation_level=isolation_level,
                read_only=read_only,
                savepoints=savepoints,
                strategy=strategy,
            ) as scoped:
                return f(scoped, *args, **kwargs)

        return decorated_function

    if func is None:
        return decorator
    return decorator(func)
