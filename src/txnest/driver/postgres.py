from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from txnest.driver.base import BaseDriver, split_subname
from txnest.transaction.interfaces import IsolationLevel

try:
    import psycopg

    POSTGRES_ENABLED = True
except ModuleNotFoundError:
    POSTGRES_ENABLED = False


class PostgresDriver(BaseDriver):
    """Driver for a Postgres database using psycopg

    Connections are opened in autocommit mode so that a connection outside
    of a transaction does not hold one open implicitly.
    """

    ENABLED = POSTGRES_ENABLED
    package = "postgres"
    errors = (psycopg.Error,) if POSTGRES_ENABLED else ()

    def connect(self, subname: str, properties: Dict[str, Any]) -> Any:
        target = split_subname(subname)
        kwargs = {
            "host": target.host,
            "port": target.port,
            "dbname": target.database,
            **{
                key: value
                for key, value in properties.items()
                if key != "isolation_level"
            },
        }
        kwargs = {key: value for key, value in kwargs.items() if value}
        return psycopg.connect(autocommit=True, **kwargs)

    def connect_uri(self, uri: str) -> Any:
        return psycopg.connect(uri, autocommit=True)

    def get_autocommit(self, raw: Any) -> bool:
        return raw.autocommit

    def set_autocommit(self, raw: Any, autocommit: bool) -> None:
        raw.autocommit = autocommit

    def get_isolation_level(self, raw: Any) -> IsolationLevel:
        level = raw.isolation_level
        if level is None:
            return IsolationLevel.NONE
        return IsolationLevel[level.name]

    def set_isolation_level(self, raw: Any, level: IsolationLevel) -> None:
        if level is IsolationLevel.NONE:
            raw.isolation_level = None
        else:
            raw.isolation_level = psycopg.IsolationLevel[level.name]

    def get_read_only(self, raw: Any) -> Optional[bool]:
        return raw.read_only

    def set_read_only(self, raw: Any, read_only: Optional[bool]) -> None:
        raw.read_only = read_only

    def execute_commands(
        self, cursor: Any, commands: Sequence[str]
    ) -> List[int]:
        """Send the commands in one pipeline, so that they reach the server
        in a single round trip. Commands after a failing one are skipped."""
        if len(commands) < 2 or not psycopg.Pipeline.is_supported():
            return super().execute_commands(cursor, commands)
        raw = cursor.connection
        cursors = [raw.cursor() for _ in commands]
        try:
            with raw.pipeline():
                for command_cursor, command in zip(cursors, commands):
                    command_cursor.execute(command)
            return [command_cursor.rowcount for command_cursor in cursors]
        finally:
            for command_cursor in cursors:
                command_cursor.close()

    def execute_batch(
        self, cursor: Any, sql: str, groups: Sequence[Tuple[Any, ...]]
    ) -> Optional[List[int]]:
        cursor.executemany(sql, groups, returning=True)
        return [result.rowcount for result in _results(cursor)]

    def execute_batch_returning(
        self, cursor: Any, sql: str, groups: Sequence[Tuple[Any, ...]]
    ) -> List[Any]:
        cursor.executemany(sql, groups, returning=True)
        rows: List[Any] = []
        for result in _results(cursor):
            rows.extend(result.fetchall())
        return rows


def _results(cursor: Any) -> Iterator[Any]:
    """Step through the result of every parameter group kept by
    ``executemany(..., returning=True)``"""
    yield cursor
    while cursor.nextset():
        yield cursor
