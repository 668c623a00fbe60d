from unittest.mock import MagicMock, call

import pytest

from txnest import (
    DriverError,
    FlatStrategy,
    IsolationLevel,
    NestedTransactionDisabled,
    NoopStrategy,
    Settings,
    TransactionError,
    TransactionStrategy,
    atomic,
    call_in_transaction,
    execute_prepared,
    mark_rollback_only,
    query,
    run_in_transaction,
    transaction,
)
from txnest.transaction.savepoint import Savepoint


def test_commit_restores_autocommit(conn, raw, driver):
    result = run_in_transaction(conn, lambda c: "done")

    assert result == "done"
    assert driver.method_calls == [
        call.get_autocommit(raw),
        call.set_autocommit(raw, False),
        call.commit(raw),
        call.set_autocommit(raw, True),
    ]
    assert not conn.in_transaction
    assert conn.transaction_frames == []


@pytest.mark.parametrize("initial", (True, False))
def test_initial_autocommit_is_restored(conn, raw, driver, initial):
    driver.get_autocommit.return_value = initial

    with transaction(conn):
        assert conn.in_transaction

    assert driver.set_autocommit.call_args_list[-1] == call(raw, initial)


def test_failure_rolls_back_once(conn, raw, driver):
    def work(c):
        raise ValueError("nope")

    with pytest.raises(ValueError, match="nope"):
        run_in_transaction(conn, work)

    driver.rollback.assert_called_once_with(raw)
    driver.commit.assert_not_called()
    assert driver.set_autocommit.call_args_list[-1] == call(raw, True)
    assert not conn.in_transaction


def test_work_receives_the_connection(conn):
    seen = []

    call_in_transaction(conn, seen.append)

    assert seen == [conn]


def test_nested_transaction_uses_savepoint(conn, raw, driver):
    with transaction(conn):
        with transaction(conn) as nested:
            assert nested is conn
            (savepoint,) = conn.transaction_frames[1:]
            assert isinstance(savepoint, Savepoint)

    name = savepoint.name
    driver.savepoint.assert_called_once_with(raw, name)
    driver.release_savepoint.assert_called_once_with(raw, name)
    driver.rollback_to_savepoint.assert_not_called()
    driver.commit.assert_called_once_with(raw)
    assert savepoint.is_released


def test_nested_failure_rolls_back_to_savepoint(conn, raw, driver):
    with transaction(conn):
        with pytest.raises(ValueError):
            with transaction(conn):
                savepoint = conn.transaction_frames[-1]
                raise ValueError

        assert conn.in_transaction
        assert len(conn.transaction_frames) == 1

    driver.rollback_to_savepoint.assert_called_once_with(raw, savepoint.name)
    driver.rollback.assert_not_called()
    driver.commit.assert_called_once_with(raw)


def test_savepoint_names_are_unique(conn, driver):
    with transaction(conn):
        with transaction(conn):
            pass
        with transaction(conn):
            pass

    first, second = driver.savepoint.call_args_list
    assert first != second


def test_rollback_only_rolls_back_outer(conn, raw, driver):
    with transaction(conn):
        with transaction(conn):
            mark_rollback_only(conn)
        assert conn.rollback_only

    driver.commit.assert_not_called()
    driver.rollback.assert_called_once_with(raw)
    assert not conn.rollback_only


def test_savepoints_disabled(conn, driver):
    def work(c):
        driver.reset_mock()
        with pytest.raises(NestedTransactionDisabled, match="Savepoints"):
            run_in_transaction(c, lambda _: None, savepoints=False)
        assert driver.method_calls == []

    run_in_transaction(conn, work)


def test_savepoints_disabled_allowed_when_idle(conn, driver):
    run_in_transaction(conn, lambda c: None, savepoints=False)

    driver.commit.assert_called_once()


def test_savepoints_disabled_is_a_transaction_error():
    assert issubclass(NestedTransactionDisabled, TransactionError)


def test_commit_failure_rolls_back(conn, raw, driver, driver_error):
    driver.commit.side_effect = driver_error("serialization failure")

    with pytest.raises(DriverError) as exc_info:
        run_in_transaction(conn, lambda c: None)

    assert isinstance(exc_info.value.__cause__, driver_error)
    driver.rollback.assert_called_once_with(raw)
    assert driver.set_autocommit.call_args_list[-1] == call(raw, True)
    assert not conn.in_transaction


def test_rollback_failure_keeps_original_error(
    conn, raw, driver, driver_error
):
    driver.rollback.side_effect = driver_error("connection lost")

    with pytest.raises(ValueError) as exc_info:
        with transaction(conn):
            raise ValueError("original")

    (cleanup,) = exc_info.value.cleanup_errors
    assert isinstance(cleanup, DriverError)
    assert driver.set_autocommit.call_args_list[-1] == call(raw, True)
    assert not conn.in_transaction


def test_failed_savepoint_rollback_dooms_outer(
    conn, raw, driver, driver_error
):
    driver.rollback_to_savepoint.side_effect = driver_error("gone")

    with transaction(conn):
        with pytest.raises(ValueError) as exc_info:
            with transaction(conn):
                raise ValueError("inner")
        assert conn.rollback_only
        assert len(conn.transaction_frames) == 1

    (cleanup,) = exc_info.value.cleanup_errors
    assert isinstance(cleanup, DriverError)
    driver.commit.assert_not_called()
    driver.rollback.assert_called_once_with(raw)
    assert not conn.rollback_only


def test_failed_release_and_rollback_dooms_outer(
    conn, raw, driver, driver_error
):
    driver.release_savepoint.side_effect = driver_error("release")
    driver.rollback_to_savepoint.side_effect = driver_error("rollback")

    with transaction(conn):
        with pytest.raises(DriverError):
            with transaction(conn):
                pass
        assert conn.rollback_only

    driver.commit.assert_not_called()
    driver.rollback.assert_called_once_with(raw)


def test_driver_default_read_only_is_restored(conn, raw, driver):
    driver.get_read_only.return_value = None

    with transaction(conn, read_only=True):
        pass

    assert driver.set_read_only.call_args_list == [
        call(raw, True),
        call(raw, None),
    ]


def test_restore_failure_after_commit(conn, driver, driver_error):
    driver.set_autocommit.side_effect = [None, driver_error("gone")]

    with pytest.raises(DriverError):
        run_in_transaction(conn, lambda c: None)

    driver.commit.assert_called_once()
    assert not conn.in_transaction
    assert conn.transaction_frames == []


def test_begin_failure_leaves_connection_idle(conn, driver, driver_error):
    driver.set_autocommit.side_effect = driver_error("refused")
    work = MagicMock()

    with pytest.raises(DriverError):
        run_in_transaction(conn, work)

    work.assert_not_called()
    assert not conn.in_transaction
    assert conn.transaction_frames == []


def test_isolation_level_and_read_only_are_restored(conn, raw, driver):
    with transaction(conn, isolation_level="serializable", read_only=True):
        pass

    assert driver.method_calls == [
        call.get_isolation_level(raw),
        call.set_isolation_level(raw, IsolationLevel.SERIALIZABLE),
        call.get_read_only(raw),
        call.set_read_only(raw, True),
        call.get_autocommit(raw),
        call.set_autocommit(raw, False),
        call.commit(raw),
        call.set_autocommit(raw, True),
        call.set_read_only(raw, False),
        call.set_isolation_level(raw, IsolationLevel.NONE),
    ]


def test_nested_matching_options_are_accepted(conn, driver):
    with transaction(conn, isolation_level="serializable", read_only=True):
        with transaction(
            conn, isolation_level=IsolationLevel.SERIALIZABLE, read_only=True
        ):
            pass

    driver.release_savepoint.assert_called_once()


@pytest.mark.parametrize(
    "options",
    (
        {"isolation_level": "read-committed"},
        {"read_only": True},
    ),
)
def test_nested_conflicting_options_are_rejected(conn, driver, options):
    with transaction(conn, isolation_level="serializable"):
        with pytest.raises(TransactionError):
            with transaction(conn, **options):
                pass

    driver.savepoint.assert_not_called()
    driver.commit.assert_called_once()


def test_flat_strategy_joins_outer(conn, raw, driver):
    with transaction(conn, strategy=FlatStrategy()):
        with transaction(conn, strategy=FlatStrategy()):
            assert conn.transaction_frames[-1] == "joined"

    driver.savepoint.assert_not_called()
    driver.commit.assert_called_once_with(raw)


def test_flat_strategy_failure_dooms_outer(conn, raw, driver):
    strategy = FlatStrategy()
    with transaction(conn, strategy=strategy):
        with pytest.raises(ValueError):
            with transaction(conn, strategy=strategy):
                raise ValueError
        assert conn.rollback_only

    driver.commit.assert_not_called()
    driver.rollback.assert_called_once_with(raw)
    assert not conn.rollback_only


def test_noop_strategy_makes_no_driver_calls(conn, driver):
    with pytest.raises(ValueError):
        with transaction(conn, strategy=NoopStrategy()):
            raise ValueError

    run_in_transaction(conn, lambda c: None, strategy=NoopStrategy())

    assert driver.method_calls == []
    assert not conn.in_transaction


def make_strategy():
    strategy = MagicMock(spec=TransactionStrategy)
    strategy.begin.side_effect = lambda conn, options: conn
    return strategy


def test_strategy_precedence(conn):
    default, attached, explicit = (
        make_strategy(),
        make_strategy(),
        make_strategy(),
    )
    Settings.configure(strategy=default)

    run_in_transaction(conn, lambda c: None)
    default.begin.assert_called_once()

    conn.strategy = attached
    run_in_transaction(conn, lambda c: None)
    attached.begin.assert_called_once()

    run_in_transaction(conn, lambda c: None, strategy=explicit)
    explicit.begin.assert_called_once()

    assert default.begin.call_count == 1
    assert attached.begin.call_count == 1


def test_strategy_receives_options(conn):
    strategy = make_strategy()

    with transaction(conn, strategy=strategy, read_only=True):
        pass

    (_, options), _ = strategy.begin.call_args
    assert options.read_only is True
    assert options.isolation_level is None
    strategy.commit.assert_called_once_with(conn, options)
    strategy.rollback.assert_not_called()


def test_strategy_rollback_on_failure(conn):
    strategy = make_strategy()

    with pytest.raises(ValueError):
        with transaction(conn, strategy=strategy):
            raise ValueError

    strategy.rollback.assert_called_once()
    strategy.commit.assert_not_called()


def test_atomic(conn, raw, driver):
    @atomic
    def transfer(c, amount):
        assert c.in_transaction
        return amount * 2

    @atomic(read_only=True)
    def report(c):
        return "report"

    assert transfer(conn, 21) == 42
    assert report(conn) == "report"
    assert transfer.__name__ == "transfer"
    assert driver.commit.call_count == 2
    driver.set_read_only.assert_has_calls([call(raw, True), call(raw, False)])


def test_savepoint_requires_transaction(conn):
    with pytest.raises(TransactionError):
        Savepoint.create(conn)


def test_savepoint_cannot_be_released_twice(conn):
    conn.in_transaction = True
    savepoint = Savepoint.create(conn)
    savepoint.release()

    with pytest.raises(TransactionError):
        savepoint.release()
    with pytest.raises(TransactionError):
        savepoint.rollback()
    conn.in_transaction = False


def test_sqlite_commit(accounts, count_rows):
    with transaction(accounts):
        execute_prepared(
            accounts,
            "INSERT INTO accounts (owner, balance) VALUES (?, ?)",
            ["carol", 10],
        )
        assert accounts.raw.in_transaction

    assert not accounts.raw.in_transaction
    assert accounts.get_autocommit()
    assert count_rows(accounts) == 3


def test_sqlite_rollback(accounts, count_rows):
    with pytest.raises(ValueError):
        with transaction(accounts):
            execute_prepared(
                accounts, "DELETE FROM accounts WHERE owner = ?", ["alice"]
            )
            raise ValueError

    assert count_rows(accounts) == 2
    assert accounts.get_autocommit()


def test_sqlite_nested_rollback_keeps_outer_work(accounts, count_rows):
    insert = "INSERT INTO accounts (owner, balance) VALUES (?, ?)"

    with transaction(accounts):
        execute_prepared(accounts, insert, ["carol", 10])
        with pytest.raises(ValueError):
            with transaction(accounts):
                execute_prepared(accounts, insert, ["dave", 20])
                raise ValueError

    with query(accounts, "SELECT owner FROM accounts ORDER BY id") as result:
        owners = [row["owner"] for row in result.data]
    assert owners == ["alice", "bob", "carol"]


def test_sqlite_flat_failure_discards_everything(accounts, count_rows):
    insert = "INSERT INTO accounts (owner, balance) VALUES (?, ?)"
    strategy = FlatStrategy()

    with transaction(accounts, strategy=strategy):
        execute_prepared(accounts, insert, ["carol", 10])
        with pytest.raises(ValueError):
            with transaction(accounts, strategy=strategy):
                raise ValueError

    assert count_rows(accounts) == 2


def test_sqlite_read_only_transaction(accounts, count_rows):
    with pytest.raises(DriverError):
        with transaction(accounts, read_only=True):
            execute_prepared(
                accounts, "DELETE FROM accounts WHERE owner = ?", ["bob"]
            )

    assert not accounts.get_read_only()
    assert count_rows(accounts) == 2
