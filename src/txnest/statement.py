from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from txnest.convert import Binder, convert_sql_params
from txnest.exception import BatchError, ConfigurationError
from txnest.hydrator import Hydrator

if TYPE_CHECKING:
    from txnest.connection import Connection

logger = logging.getLogger(__name__)

# DB-API rowcount for "not determined"
UNKNOWN_COUNT = -1


class _BaseStatement:
    def __init__(self, conn: Connection) -> None:
        self.conn = conn
        self._cursor: Any = None
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cursor(self) -> Any:
        if self._closed:
            raise ConfigurationError(f"{self} is closed")
        if self._cursor is None:
            self._cursor = self.conn.cursor()
        return self._cursor

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cursor is not None:
            with self.conn.translate_errors("close the cursor"):
                self._cursor.close()

    def _run(self, cursor: Any, sql: str, params: Optional[Tuple]) -> None:
        if params:
            cursor.execute(self._convert(sql), params)
        else:
            cursor.execute(sql)

    def _convert(self, sql: str) -> str:
        driver = self.conn.driver
        return convert_sql_params(
            sql, driver.POSITIONAL_SUB, driver.ESCAPE_PERCENT
        )


class Statement(_BaseStatement):
    """Plain SQL commands executed in submission order as one batch"""

    def __init__(self, conn: Connection) -> None:
        super().__init__(conn)
        self._commands: List[str] = []

    def add_batch(self, command: str) -> None:
        self._commands.append(command)

    def execute_batch(self) -> List[int]:
        """Run the queued commands and return one update count per command

        Raises:
            BatchError: If a command fails. Carries the counts of the
                commands that ran before it when the driver reports them.
        """
        commands, self._commands = self._commands, []
        driver = self.conn.driver
        cursor = self.cursor
        try:
            return driver.execute_commands(cursor, commands)
        except driver.errors as e:
            raise BatchError(
                f"Batch of {len(commands)} commands failed: {e}"
            ) from e

    def __str__(self) -> str:
        return f"<Statement {len(self._commands)} queued>"


class PreparedStatement(_BaseStatement):
    """A parametrized statement bound to a connection

    Parameters are bound by position, starting at 1, and pass through a
    `Binder` before reaching the driver. ``?`` placeholders are converted to
    the parameter style of the driver.

    Example:

    ```python
    with PreparedStatement(conn, "UPDATE foo SET x = ? WHERE y = ?") as stmt:
        stmt.bind(1, 10)
        stmt.bind(2, 20)
        stmt.add_batch()
        counts = stmt.execute_batch()
    ```
    """

    def __init__(
        self,
        conn: Connection,
        sql: str,
        binder: Optional[Binder] = None,
    ) -> None:
        super().__init__(conn)
        self.sql = sql
        self.binder = binder or Binder()
        self._params: Dict[int, Any] = {}
        self._batch: List[Tuple[Any, ...]] = []

    def __str__(self) -> str:
        return f"<PreparedStatement {self.sql!r}>"

    def bind(self, index: int, value: Any) -> None:
        if index < 1:
            raise ConfigurationError(
                f"Parameter indexes start at 1, got {index}"
            )
        self._params[index] = self.binder.to_sql(value)

    def bind_all(self, params: Sequence[Any]) -> None:
        for index, value in enumerate(params, start=1):
            self.bind(index, value)

    def clear_parameters(self) -> None:
        self._params = {}

    def parameters(self) -> Tuple[Any, ...]:
        """The bound values in placeholder order"""
        for position in range(1, len(self._params) + 1):
            if position not in self._params:
                raise ConfigurationError(
                    f"No value bound for parameter {position} of {self}"
                )
        return tuple(
            self._params[position]
            for position in range(1, len(self._params) + 1)
        )

    def add_batch(self) -> None:
        self._batch.append(self.parameters())
        self.clear_parameters()

    def execute_query(self) -> Any:
        """Run the statement with the bound parameters and return the
        driver cursor positioned before the first row"""
        cursor = self.cursor
        with self.conn.translate_errors(f"execute {self.sql!r}"):
            self._run(cursor, self.sql, self.parameters())
        return cursor

    def execute_batch(
        self,
        returning: Optional[Sequence[str]] = None,
        return_all: bool = False,
        hydrator: Optional[Hydrator] = None,
    ) -> List[Any]:
        """Send every queued parameter group to the driver as one batch

        Args:
            returning (Sequence[str], optional): Columns to hand back from
                every executed statement. Defaults to `None`.
            return_all (bool, optional): Hand back every column.
                Defaults to `False`.
            hydrator (Hydrator, optional): Builds the returned records.
                Defaults to `None`.

        Raises:
            BatchError: If the batch fails. ``counts`` holds the update
                counts of the groups that ran before the failure when the
                driver reports them, and is `None` otherwise.

        Returns:
            List[Any]: One update count per group, or the returned records
                when ``returning`` or ``return_all`` is used. A count of
                `UNKNOWN_COUNT` means the driver did not report it.
        """
        groups, self._batch = self._batch, []
        if not groups:
            return []
        driver = self.conn.driver
        wants_rows = return_all or bool(returning)
        hydrator = hydrator or Hydrator()
        cursor = self.cursor

        if wants_rows and not driver.SUPPORTS_RETURNING:
            return self._execute_generated_keys(cursor, groups)

        sql = self.sql
        if wants_rows:
            sql = driver.returning(sql, None if return_all else returning)
        sql = self._convert(sql)
        try:
            if wants_rows:
                rows = driver.execute_batch_returning(cursor, sql, groups)
            else:
                counts = driver.execute_batch(cursor, sql, groups)
        except driver.errors as e:
            raise BatchError(
                f"Batch of {len(groups)} parameter groups for {self} "
                f"failed: {e}"
            ) from e
        logger.debug("Executed %s for %d parameter groups", self, len(groups))

        if wants_rows:
            keys = hydrator.keys(cursor.description or ())
            return [hydrator.hydrate(row, keys) for row in rows]
        if counts is None:
            return [UNKNOWN_COUNT] * len(groups)
        return counts

    def _execute_generated_keys(
        self, cursor: Any, groups: List[Tuple[Any, ...]]
    ) -> List[Any]:
        # The driver hands back generated keys for the last statement only
        driver = self.conn.driver
        sql = self._convert(self.sql)
        counts: List[int] = []
        records: List[Any] = []
        for index, params in enumerate(groups):
            try:
                cursor.execute(sql, params)
                records.extend(driver.generated_keys(cursor))
            except driver.errors as e:
                raise BatchError(
                    f"Parameter group {index} of the batch failed: {e}",
                    counts=counts,
                    index=index,
                ) from e
            counts.append(cursor.rowcount)
        return records
