from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional, Sequence, Tuple

from txnest.driver.base import BaseDriver
from txnest.exception import BatchError
from txnest.transaction.interfaces import IsolationLevel

MEMORY = ":memory:"
IGNORED_PROPERTIES = ("user", "password", "isolation_level")


class SQLiteDriver(BaseDriver):
    """Driver for a SQLite database using the standard library module.

    Connections are opened with ``isolation_level=None``. The module never
    opens transactions on its own, which makes sqlite's autocommit state
    (no open transaction) the autocommit flag of the connection.
    """

    ENABLED = True
    POSITIONAL_SUB = r"?"
    ESCAPE_PERCENT = False
    SUPPORTS_RETURNING = sqlite3.sqlite_version_info >= (3, 35, 0)
    package = "sqlite"
    errors = (sqlite3.Error,)

    def connect(self, subname: str, properties: Dict[str, Any]) -> Any:
        kwargs = {
            key: value
            for key, value in properties.items()
            if key not in IGNORED_PROPERTIES
        }
        if "timeout" in kwargs:
            kwargs["timeout"] = float(kwargs["timeout"])
        database = self.database_path(subname)
        if database.startswith("file:"):
            kwargs["uri"] = True
        return sqlite3.connect(database, isolation_level=None, **kwargs)

    @staticmethod
    def database_path(subname: str) -> str:
        """Map a subname onto the path sqlite3 expects

        ``//localhost/tmp/db.sqlite`` and ``///tmp/db.sqlite`` point to
        ``/tmp/db.sqlite``; sqlite has no notion of a host.
        """
        path = subname
        if path.startswith("//"):
            path = path[2:]
            if "/" in path and not path.startswith("/"):
                _, _, remainder = path.partition("/")
                path = f"/{remainder}"
        if path in ("", "/", MEMORY, f"/{MEMORY}", "memory"):
            return MEMORY
        return path

    def get_autocommit(self, raw: Any) -> bool:
        return not raw.in_transaction

    def set_autocommit(self, raw: Any, autocommit: bool) -> None:
        if autocommit:
            if raw.in_transaction:
                raw.commit()
        elif not raw.in_transaction:
            raw.execute("BEGIN")

    def get_isolation_level(self, raw: Any) -> IsolationLevel:
        (value,) = raw.execute("PRAGMA read_uncommitted").fetchone()
        if value:
            return IsolationLevel.READ_UNCOMMITTED
        return IsolationLevel.NONE

    def set_isolation_level(self, raw: Any, level: IsolationLevel) -> None:
        if level is IsolationLevel.READ_UNCOMMITTED:
            raw.execute("PRAGMA read_uncommitted = 1")
        elif level in (IsolationLevel.NONE, IsolationLevel.SERIALIZABLE):
            raw.execute("PRAGMA read_uncommitted = 0")
        else:
            raise sqlite3.NotSupportedError(
                f"SQLite does not support isolation level {level.value}"
            )

    def get_read_only(self, raw: Any) -> bool:
        (value,) = raw.execute("PRAGMA query_only").fetchone()
        return bool(value)

    def set_read_only(self, raw: Any, read_only: bool) -> None:
        raw.execute(f"PRAGMA query_only = {1 if read_only else 0}")

    def execute_batch(
        self, cursor: Any, sql: str, groups: Sequence[Tuple[Any, ...]]
    ) -> Optional[List[int]]:
        """Run the groups one at a time. ``executemany`` only reports the
        total, and an in process database has no round trips to save."""
        counts: List[int] = []
        for index, params in enumerate(groups):
            try:
                cursor.execute(sql, params)
            except sqlite3.Error as e:
                raise BatchError(
                    f"Parameter group {index} of the batch failed: {e}",
                    counts=counts,
                    index=index,
                ) from e
            counts.append(cursor.rowcount)
        return counts
