from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from txnest.driver.base import BaseDriver
from txnest.exception import ConfigurationError
from txnest.registry import DriverRegistry

try:
    from psycopg_pool import ConnectionPool

    POOL_ENABLED = True
except ModuleNotFoundError:
    POOL_ENABLED = False


class DataSource(ABC):
    """Source of already configured connections, usually a pool.

    txnest does not manage the pool: it only borrows a connection when one
    is opened and hands it back when the connection is closed.
    """

    driver: BaseDriver

    @abstractmethod
    def get_connection(
        self, username: Optional[str] = None, password: Optional[str] = None
    ) -> Any: ...

    def release(self, raw: Any) -> None:
        self.driver.close(raw)


class PsycopgPoolDataSource(DataSource):
    """Datasource backed by a `psycopg_pool.ConnectionPool`"""

    def __init__(self, pool: ConnectionPool) -> None:
        if not POOL_ENABLED:
            raise ConfigurationError(
                "Postgres pool not found. Try installing it: "
                "pip install txnest[postgres]"
            )
        self.pool = pool
        self.driver = DriverRegistry.load(
            DriverRegistry.classname("postgresql")
            or "txnest.driver.postgres.PostgresDriver"
        )

    def get_connection(
        self, username: Optional[str] = None, password: Optional[str] = None
    ) -> Any:
        if username or password:
            raise ConfigurationError(
                "psycopg pools are created with their credentials and do not "
                "accept a username or password per connection"
            )
        return self.pool.getconn()

    def release(self, raw: Any) -> None:
        self.pool.putconn(raw)

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self.pool}>"


def as_datasource(datasource: Any) -> Any:
    """Adapt the ``datasource`` entry of a dbspec

    Accepts a `DataSource`, a `psycopg_pool.ConnectionPool`, or any object
    exposing ``get_connection(username, password)`` and a ``driver``.
    """
    if isinstance(datasource, DataSource):
        return datasource
    if POOL_ENABLED and isinstance(datasource, ConnectionPool):
        return PsycopgPoolDataSource(datasource)
    if hasattr(datasource, "get_connection"):
        if not isinstance(getattr(datasource, "driver", None), BaseDriver):
            raise ConfigurationError(
                f"datasource {datasource} does not declare its driver"
            )
        return datasource
    raise ConfigurationError(
        f"datasource of type {type(datasource).__name__} cannot provide "
        "connections"
    )
