from __future__ import annotations

from typing import Any, Dict

from txnest.driver.base import BaseDriver, split_subname
from txnest.transaction.interfaces import IsolationLevel

try:
    import mysql.connector

    MYSQL_ENABLED = True
except ModuleNotFoundError:
    MYSQL_ENABLED = False

MYSQL_DEFAULT_ISOLATION = IsolationLevel.REPEATABLE_READ


class MysqlDriver(BaseDriver):
    """Driver for a MySQL database using mysql-connector-python

    MySQL cannot return rows from DML statements, so `returning` hands back
    the generated key of every executed statement instead.
    """

    ENABLED = MYSQL_ENABLED
    SUPPORTS_RETURNING = False
    package = "mysql"
    errors = (mysql.connector.Error,) if MYSQL_ENABLED else ()

    def connect(self, subname: str, properties: Dict[str, Any]) -> Any:
        target = split_subname(subname)
        kwargs = {
            "host": target.host,
            "port": target.port,
            "database": target.database,
            **{
                key: value
                for key, value in properties.items()
                if key != "isolation_level"
            },
        }
        kwargs = {key: value for key, value in kwargs.items() if value}
        return mysql.connector.connect(autocommit=True, **kwargs)

    def cursor(self, raw: Any) -> Any:
        return raw.cursor(buffered=True)

    def get_autocommit(self, raw: Any) -> bool:
        return bool(raw.autocommit)

    def set_autocommit(self, raw: Any, autocommit: bool) -> None:
        raw.autocommit = autocommit

    def get_isolation_level(self, raw: Any) -> IsolationLevel:
        return IsolationLevel.parse(
            self._select(raw, "SELECT @@transaction_isolation")
        )

    def set_isolation_level(self, raw: Any, level: IsolationLevel) -> None:
        if level is IsolationLevel.NONE:
            level = MYSQL_DEFAULT_ISOLATION
        self._run(
            raw, f"SET SESSION TRANSACTION ISOLATION LEVEL {level.value}"
        )

    def get_read_only(self, raw: Any) -> bool:
        return bool(int(self._select(raw, "SELECT @@transaction_read_only")))

    def set_read_only(self, raw: Any, read_only: bool) -> None:
        mode = "READ ONLY" if read_only else "READ WRITE"
        self._run(raw, f"SET SESSION TRANSACTION {mode}")

    def _select(self, raw: Any, sql: str) -> Any:
        cursor = self.cursor(raw)
        try:
            cursor.execute(sql)
            (value,) = cursor.fetchone()
            return value
        finally:
            cursor.close()
