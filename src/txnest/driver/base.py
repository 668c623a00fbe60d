from __future__ import annotations

from abc import ABC, abstractmethod
from collections import namedtuple
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type
from urllib.parse import urlsplit

from txnest.exception import BatchError, ConfigurationError
from txnest.transaction.interfaces import IsolationLevel

Target = namedtuple("Target", ("host", "port", "database"))


def split_subname(subname: str) -> Target:
    """Break a ``//host:port/path`` subname into its parts

    Example:

    ```python
    split_subname("//localhost:5432/db")
    # Target(host='localhost', port=5432, database='db')
    ```
    """
    if not subname.startswith("//"):
        return Target(None, None, subname or None)
    parts = urlsplit(subname)
    try:
        port = parts.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid port in subname {subname}") from e
    database = parts.path[1:] if parts.path.startswith("/") else parts.path
    return Target(parts.hostname or None, port, database or None)


class BaseDriver(ABC):
    """Adapter translating the operations txnest needs onto one DB-API
    module.

    Subclasses declare the DB-API exception base classes in `errors` so
    that `Connection` can turn them into `DriverError`.
    """

    ENABLED: bool = False
    POSITIONAL_SUB: str = r"%s"
    ESCAPE_PERCENT: bool = True
    SUPPORTS_RETURNING: bool = True
    package: str = ""
    errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self) -> None:
        self._setup_driver()

    def _setup_driver(self) -> None:
        if not self.ENABLED:
            raise ConfigurationError(
                f"{self.__class__.__name__} driver not found. Try installing "
                f"it: pip install txnest[{self.package}]"
            )

    @abstractmethod
    def connect(self, subname: str, properties: Dict[str, Any]) -> Any: ...

    def connect_uri(self, uri: str) -> Any:
        """Open a connection from a full connection URI"""
        parts = urlsplit(uri)
        netloc = parts.hostname or ""
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        properties: Dict[str, Any] = {}
        if parts.username:
            properties["user"] = parts.username
        if parts.password:
            properties["password"] = parts.password
        return self.connect(f"//{netloc}{parts.path}", properties)

    def close(self, raw: Any) -> None:
        raw.close()

    def cursor(self, raw: Any) -> Any:
        return raw.cursor()

    @abstractmethod
    def get_autocommit(self, raw: Any) -> bool: ...

    @abstractmethod
    def set_autocommit(self, raw: Any, autocommit: bool) -> None: ...

    @abstractmethod
    def get_isolation_level(self, raw: Any) -> IsolationLevel: ...

    @abstractmethod
    def set_isolation_level(self, raw: Any, level: IsolationLevel) -> None:
        """Apply an isolation level. `IsolationLevel.NONE` puts back the
        driver default."""

    @abstractmethod
    def get_read_only(self, raw: Any) -> Optional[bool]:
        """The access mode of the session. `None` when the driver default
        is in effect."""

    @abstractmethod
    def set_read_only(self, raw: Any, read_only: Optional[bool]) -> None: ...

    def commit(self, raw: Any) -> None:
        raw.commit()

    def rollback(self, raw: Any) -> None:
        raw.rollback()

    def savepoint(self, raw: Any, name: str) -> None:
        self._run(raw, f"SAVEPOINT {name}")

    def release_savepoint(self, raw: Any, name: str) -> None:
        self._run(raw, f"RELEASE SAVEPOINT {name}")

    def rollback_to_savepoint(self, raw: Any, name: str) -> None:
        self._run(raw, f"ROLLBACK TO SAVEPOINT {name}")

    def returning(self, sql: str, columns: Optional[Sequence[str]]) -> str:
        """Extend a statement so that it hands back the affected rows.

        ``columns`` of ``None`` requests every column.
        """
        clause = ", ".join(columns) if columns else "*"
        return f"{sql.rstrip().rstrip(';')} RETURNING {clause}"

    def generated_keys(self, cursor: Any) -> Sequence[Dict[str, Any]]:
        """Records describing the keys generated by the last statement for
        drivers that cannot return rows from DML"""
        return [{"generated_key": cursor.lastrowid}]

    def execute_commands(
        self, cursor: Any, commands: Sequence[str]
    ) -> List[int]:
        """Run plain SQL commands in order and return one update count per
        command.

        DB-API has no batch interface for commands without parameters, so
        they are sent one at a time and the counts of the commands that
        completed before a failure are known.
        """
        counts: List[int] = []
        for index, command in enumerate(commands):
            try:
                cursor.execute(command)
            except self.errors as e:
                raise BatchError(
                    f"Command {index} of the batch failed: {e}",
                    counts=counts,
                    index=index,
                ) from e
            counts.append(cursor.rowcount)
        return counts

    def execute_batch(
        self, cursor: Any, sql: str, groups: Sequence[Tuple[Any, ...]]
    ) -> Optional[List[int]]:
        """Send every parameter group of a statement as one batch, in order.

        Returns one update count per group, or `None` when the driver only
        reports a total for the batch.
        """
        cursor.executemany(sql, groups)
        if len(groups) == 1:
            return [cursor.rowcount]
        return None

    def execute_batch_returning(
        self, cursor: Any, sql: str, groups: Sequence[Tuple[Any, ...]]
    ) -> List[Any]:
        """Run a statement carrying a ``RETURNING`` clause for every
        parameter group and collect the rows it hands back.

        DB-API leaves the rows produced by ``executemany`` undefined, so the
        groups run one at a time.
        """
        rows: List[Any] = []
        for params in groups:
            cursor.execute(sql, params)
            rows.extend(cursor.fetchall())
        return rows

    def _run(self, raw: Any, sql: str) -> None:
        cursor = self.cursor(raw)
        try:
            cursor.execute(sql)
        finally:
            cursor.close()

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}>"
