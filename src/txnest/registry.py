from __future__ import annotations

from importlib import import_module
from inspect import isclass
from typing import TYPE_CHECKING, Dict, Optional, Type, Union

from txnest.exception import ConfigurationError

if TYPE_CHECKING:
    from txnest.driver.base import BaseDriver

DriverRef = Union[str, Type["BaseDriver"]]

DEFAULT_DRIVERS: Dict[str, DriverRef] = {
    "postgresql": "txnest.driver.postgres.PostgresDriver",
    "postgres": "txnest.driver.postgres.PostgresDriver",
    "mysql": "txnest.driver.mysql.MysqlDriver",
    "sqlite": "txnest.driver.sqlite.SQLiteDriver",
    "sqlite3": "txnest.driver.sqlite.SQLiteDriver",
}


class DriverRegistry:
    """Map of subprotocols to driver adapters (classes or their dotted
    names), plus a cache of the adapters loaded so far."""

    _singleton = None
    _classnames: Dict[str, DriverRef]
    _drivers: Dict[DriverRef, BaseDriver]

    def __new__(cls, *args, **kwargs):
        if cls._singleton is None:
            cls.reset()
        return cls._singleton

    @classmethod
    def register(cls, subprotocol: str, driver: DriverRef) -> None:
        """Make a driver adapter available for a subprotocol

        Args:
            subprotocol (str): The URI scheme, eg. ``"postgresql"``
            driver (Union[str, Type[BaseDriver]]): The adapter class or its
                dotted name
        """
        cls()._classnames[subprotocol.lower()] = driver

    @classmethod
    def classname(cls, subprotocol: Optional[str]) -> Optional[DriverRef]:
        if not subprotocol:
            return None
        return cls()._classnames.get(subprotocol.lower())

    @classmethod
    def load(cls, classname: DriverRef) -> BaseDriver:
        """Resolve a driver adapter and instantiate it once"""
        instance = cls()
        if classname not in instance._drivers:
            driver_class = classname
            if not isclass(driver_class):
                module_name, _, class_name = str(classname).rpartition(".")
                try:
                    driver_class = getattr(
                        import_module(module_name), class_name
                    )
                except (ImportError, AttributeError, ValueError) as e:
                    raise ConfigurationError(
                        f"Could not load driver {classname}: {e}"
                    ) from e
            instance._drivers[classname] = driver_class()
        return instance._drivers[classname]

    @classmethod
    def reset(cls):
        cls._singleton = super().__new__(cls)
        cls._singleton._classnames = dict(DEFAULT_DRIVERS)
        cls._singleton._drivers = {}


def register_driver(subprotocol: str, driver: DriverRef) -> None:
    DriverRegistry.register(subprotocol, driver)
