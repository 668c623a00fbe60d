from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterator,
    List,
    Optional,
    Sequence,
    Union,
)

from txnest.convert import Binder
from txnest.exception import (
    ClosedCursorError,
    ConfigurationError,
    chain_cleanup_error,
)
from txnest.hydrator import Hydrator, Record
from txnest.statement import PreparedStatement, Statement

if TYPE_CHECKING:
    from txnest.connection import Connection

logger = logging.getLogger(__name__)

SQLVec = Sequence[Any]
Returning = Union[str, Sequence[str], bool, None]

_NOTHING = object()
RETURN_ALL = ("all", ":all", "*")


class RowCursor:
    """Forward only, single pass sequence of records read from an open
    driver cursor on demand.

    Nothing is fetched until the first call to `has_next`, `read_next` or
    iteration. Once the owning `QueryResult` or its statement is closed every
    read raises `ClosedCursorError`. A consumed cursor cannot be restarted.
    """

    def __init__(
        self,
        conn: Connection,
        cursor: Any,
        hydrator: Hydrator,
        statement: Optional[PreparedStatement] = None,
    ):
        self.conn = conn
        self._statement = statement
        self._cursor = cursor
        self._hydrator = hydrator
        self._keys = hydrator.keys(cursor.description or ())
        self._pending: Any = _NOTHING
        self._exhausted = False
        self._closed = False

    def __iter__(self) -> RowCursor:
        return self

    def __next__(self) -> Record:
        if not self.has_next():
            raise StopIteration
        row, self._pending = self._pending, _NOTHING
        return self._hydrator.hydrate(row, self._keys)

    read_next = __next__

    def has_next(self) -> bool:
        self._check_open()
        if self._pending is _NOTHING and not self._exhausted:
            with self.conn.translate_errors("fetch a row"):
                row = self._cursor.fetchone()
            if row is None:
                self._exhausted = True
            else:
                self._pending = row
        return self._pending is not _NOTHING

    def read_all(self) -> List[Record]:
        """Fetch every remaining row at once"""
        self._check_open()
        records = []
        if self._pending is not _NOTHING:
            records.append(next(self))
        if not self._exhausted:
            with self.conn.translate_errors("fetch rows"):
                rows = self._cursor.fetchall()
            self._exhausted = True
            records.extend(
                self._hydrator.hydrate(row, self._keys) for row in rows
            )
        return records

    def close(self) -> None:
        self._closed = True
        self._pending = _NOTHING

    @property
    def closed(self) -> bool:
        if self._statement is not None and self._statement.closed:
            return True
        return self._closed

    def _check_open(self) -> None:
        if self.closed:
            raise ClosedCursorError(
                "Cannot read from a cursor whose query result was closed"
            )


class QueryResult:
    """A live query execution

    ``data`` is a list of records, or a `RowCursor` when the query was
    lazy. Closing releases the cursor and the statement together.

    Example:

    ```python
    with query(conn, ["SELECT * FROM foo WHERE id > ?", 10], lazy=True) as result:
        for row in result.data:
            print(row)
    ```
    """

    def __init__(
        self,
        statement: PreparedStatement,
        cursor: Any,
        data: Union[List[Record], RowCursor],
    ) -> None:
        self.statement = statement
        self.cursor = cursor
        self.data = data

    def __enter__(self) -> QueryResult:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def closed(self) -> bool:
        return self.statement.closed

    @property
    def lazy(self) -> bool:
        return isinstance(self.data, RowCursor)

    def close(self) -> None:
        if isinstance(self.data, RowCursor):
            self.data.close()
        self.statement.close()

    def __str__(self) -> str:
        mode = "lazy" if self.lazy else "eager"
        return f"<QueryResult {self.statement.sql!r} ({mode})>"


def make_prepared_statement(
    conn: Connection, sqlvec: SQLVec, binder: Optional[Binder] = None
) -> PreparedStatement:
    """Prepare a statement from SQL text followed by its positional
    parameters

    Example:

    ```python
    stmt = make_prepared_statement(conn, ["SELECT foo FROM bar WHERE id = ?", 1])
    ```
    """
    if isinstance(sqlvec, str) or not sqlvec:
        raise ConfigurationError(
            "Expected a sequence with SQL text followed by its parameters"
        )
    sql, *params = sqlvec
    statement = PreparedStatement(conn, sql, binder=binder)
    statement.bind_all(params)
    return statement


def execute(conn: Connection, *commands: str) -> List[int]:
    """Run raw SQL commands such as ``CREATE TABLE`` as one batch, in order

    Wrap the call in `transaction` to make the batch atomic. Not every
    database supports DDL inside a transaction.

    Raises:
        BatchError: If a command fails. Carries the counts of the commands
            that completed when the driver reports them.

    Returns:
        List[int]: One update count per command
    """
    with Statement(conn) as statement:
        for command in commands:
            statement.add_batch(command)
        return statement.execute_batch()


def execute_prepared(
    conn: Connection,
    sql: str,
    *param_groups: Sequence[Any],
    returning: Returning = None,
    binder: Optional[Binder] = None,
    hydrator: Optional[Hydrator] = None,
) -> List[Any]:
    """Run one parametrized statement for every parameter group, sent to
    the driver as one batch in order

    Example:

    ```python
    execute_prepared(conn, "UPDATE foo SET x = ? WHERE y = ?", [1, 2], [2, 3])
    # [1, 1]

    execute_prepared(
        conn,
        "INSERT INTO foo (name) VALUES (?)",
        ["a"],
        ["b"],
        returning=["id"],
    )
    # [{"id": 1}, {"id": 2}]
    ```

    Args:
        conn (Connection): The connection
        sql (str): Statement with ``?`` placeholders
        *param_groups (Sequence[Any]): Positional parameters, one group per
            execution
        returning (Union[str, Sequence[str], bool], optional): Column names
            to hand back, or ``"all"`` for every column. Defaults to `None`.
        binder (Binder, optional): Parameter conversion. Defaults to `None`.
        hydrator (Hydrator, optional): Record construction for returned
            rows. Defaults to `None`.

    Raises:
        BatchError: If a group fails. ``counts`` is `None` unless the driver
            reports the counts of the groups that completed.

    Returns:
        List[Any]: Update counts, `UNKNOWN_COUNT` where the driver does not
            report them, or the returned records
    """
    return_all = returning is True or (
        isinstance(returning, str) and returning.lower() in RETURN_ALL
    )
    columns: Optional[List[str]] = None
    if returning and not return_all:
        if isinstance(returning, str):
            columns = [returning]
        else:
            columns = list(returning)

    with PreparedStatement(conn, sql, binder=binder) as statement:
        for group in param_groups:
            statement.bind_all(group)
            statement.add_batch()
        return statement.execute_batch(
            returning=columns, return_all=return_all, hydrator=hydrator
        )


def query(
    conn: Connection,
    sql_with_params: Union[str, SQLVec, PreparedStatement],
    *,
    lazy: bool = False,
    as_arrays: bool = False,
    identifiers: Callable[[str], str] = str.lower,
    hydrator: Optional[Hydrator] = None,
) -> QueryResult:
    """Execute a query and return a `QueryResult` owning its resources

    Prefer `with_query`, or use the result as a context manager, so that
    the cursor and statement are released. A lazy result must be consumed
    before the transaction it runs in ends when the driver needs an open
    transaction for its cursors.

    Args:
        conn (Connection): The connection
        sql_with_params (Union[str, SQLVec, PreparedStatement]): SQL text,
            a sequence of SQL text followed by positional parameters, or a
            prepared statement
        lazy (bool, optional): Read rows on demand through a `RowCursor`
            instead of fetching them all. Defaults to `False`.
        as_arrays (bool, optional): Produce tuples instead of dicts.
            Defaults to `False`.
        identifiers (Callable[[str], str], optional): Column label to
            record key transformation. Defaults to `str.lower`.
        hydrator (Hydrator, optional): Replaces the record construction
            configured by ``as_arrays`` and ``identifiers``.
            Defaults to `None`.

    Returns:
        QueryResult: The result
    """
    if isinstance(sql_with_params, PreparedStatement):
        statement = sql_with_params
    elif isinstance(sql_with_params, str):
        statement = PreparedStatement(conn, sql_with_params)
    elif isinstance(sql_with_params, (list, tuple)):
        statement = make_prepared_statement(conn, sql_with_params)
    else:
        raise ConfigurationError(
            f"Cannot query with {type(sql_with_params).__name__}. Use SQL "
            "text, a sequence of SQL text and parameters, or a "
            "PreparedStatement."
        )

    if hydrator is None:
        hydrator = Hydrator(identifiers=identifiers, as_arrays=as_arrays)
    try:
        cursor = statement.execute_query()
        rows = RowCursor(conn, cursor, hydrator, statement)
        data: Union[List[Record], RowCursor] = (
            rows if lazy else rows.read_all()
        )
    except BaseException as error:
        try:
            statement.close()
        except Exception as cleanup_error:
            chain_cleanup_error(error, cleanup_error)
        raise
    result = QueryResult(statement, cursor, data)
    logger.debug("Executed %s", result)
    return result


@contextmanager
def with_query(
    conn: Connection,
    sql_with_params: Union[str, SQLVec, PreparedStatement],
    **options: Any,
) -> Iterator[Union[List[Record], RowCursor]]:
    """Run a query and yield its records, releasing every resource when
    the block exits

    Example:

    ```python
    with with_query(conn, ["SELECT name FROM people WHERE id = ?", 1]) as rows:
        for row in rows:
            print(row)
    ```
    """
    result = query(conn, sql_with_params, **options)
    try:
        yield result.data
    finally:
        result.close()
