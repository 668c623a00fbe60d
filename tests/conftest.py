from functools import partial
from unittest.mock import MagicMock

import pytest

from txnest import Settings, execute, execute_prepared, open
from txnest.connection import Connection
from txnest.driver.base import BaseDriver
from txnest.registry import DriverRegistry
from txnest.transaction.interfaces import IsolationLevel


class FakeDriverError(Exception):
    pass


@pytest.fixture(autouse=True)
def reset_registry():
    Settings.reset()
    DriverRegistry.reset()


@pytest.fixture
def driver_error():
    return FakeDriverError


@pytest.fixture
def driver():
    driver = MagicMock(spec=BaseDriver)
    driver.errors = (FakeDriverError,)
    driver.POSITIONAL_SUB = r"%s"
    driver.ESCAPE_PERCENT = True
    driver.SUPPORTS_RETURNING = True
    driver.get_autocommit.return_value = True
    driver.get_isolation_level.return_value = IsolationLevel.NONE
    driver.get_read_only.return_value = False
    for name in (
        "execute_commands",
        "execute_batch",
        "execute_batch_returning",
    ):
        getattr(driver, name).side_effect = partial(
            getattr(BaseDriver, name), driver
        )
    return driver


@pytest.fixture
def cursor(driver):
    cursor = MagicMock(name="cursor")
    cursor.description = [("ID", None), ("Name", None)]
    cursor.rowcount = 1
    driver.cursor.return_value = cursor
    return cursor


@pytest.fixture
def raw():
    return MagicMock(name="raw_connection")


@pytest.fixture
def conn(raw, driver):
    conn = Connection(raw, driver)
    yield conn
    conn.close()


@pytest.fixture
def db():
    conn = open("sqlite::memory:")
    yield conn
    conn.close()


@pytest.fixture
def accounts(db):
    execute(
        db,
        "CREATE TABLE accounts "
        "(id INTEGER PRIMARY KEY, owner TEXT, balance INTEGER)",
    )
    execute_prepared(
        db,
        "INSERT INTO accounts (owner, balance) VALUES (?, ?)",
        ["alice", 100],
        ["bob", 50],
    )
    return db


@pytest.fixture
def count_rows():
    def count(conn, table="accounts"):
        (value,) = conn.raw.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return value

    return count
