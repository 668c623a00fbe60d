from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Tuple

from txnest.exception import chain_cleanup_error

from .interfaces import (
    IsolationLevel,
    TransactionError,
    TransactionOptions,
    TransactionStrategy,
)
from .savepoint import Savepoint

if TYPE_CHECKING:
    from txnest.connection import Connection

logger = logging.getLogger(__name__)

JOINED = "joined"
UNCHANGED: Any = object()


@dataclass
class TransactionFrame:
    """What starting the outermost transaction changed on the connection.

    `UNCHANGED` marks a setting that was left untouched and must not be
    restored. Drivers may report `None` for a setting, which is restored as
    is.
    """

    options: TransactionOptions
    autocommit: Any = UNCHANGED
    isolation_level: Any = UNCHANGED
    read_only: Any = UNCHANGED


class NestedStrategy(TransactionStrategy):
    """Default strategy: the outermost scope is a real transaction and every
    nested scope is a savepoint.

    A function that runs its work in a transaction stays correct whether it
    is called on its own or from inside another transaction.
    """

    def begin(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        if conn.in_transaction:
            check_nested_options(conn, options)
            conn.transaction_frames.append(Savepoint.create(conn))
        else:
            start_transaction(conn, options)
        return conn

    def commit(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        frame = current_frame(conn)
        if isinstance(frame, Savepoint):
            release_savepoint(conn, frame)
        else:
            finish_transaction(conn, frame)
        return conn

    def rollback(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        frame = current_frame(conn)
        if isinstance(frame, Savepoint):
            try:
                frame.rollback()
            except BaseException:
                # The scope's work may still be in the transaction
                conn.mark_rollback_only()
                raise
            finally:
                conn.transaction_frames.pop()
        else:
            rollback_transaction(conn, frame)
        return conn


class FlatStrategy(TransactionStrategy):
    """Nested scopes join the outermost transaction.

    A nested scope that fails marks the whole transaction rollback only, so
    the outermost scope rolls back even if the failure was handled.
    """

    def begin(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        if conn.in_transaction:
            check_nested_options(conn, options)
            conn.transaction_frames.append(JOINED)
        else:
            start_transaction(conn, options)
        return conn

    def commit(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        frame = current_frame(conn)
        if frame == JOINED:
            conn.transaction_frames.pop()
        else:
            finish_transaction(conn, frame)
        return conn

    def rollback(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        frame = current_frame(conn)
        if frame == JOINED:
            conn.transaction_frames.pop()
            conn.mark_rollback_only()
            logger.debug("Nested scope failed, %s is rollback only", conn)
        else:
            rollback_transaction(conn, frame)
        return conn


class NoopStrategy(TransactionStrategy):
    """Leaves the connection alone: no driver calls, no state changes"""

    def begin(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        return conn

    def commit(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        return conn

    def rollback(
        self, conn: Connection, options: TransactionOptions
    ) -> Connection:
        return conn


def current_frame(conn: Connection) -> Any:
    if not conn.transaction_frames:
        raise TransactionError(f"{conn} has no active transaction scope")
    return conn.transaction_frames[-1]


def top_frame(conn: Connection) -> Optional[TransactionFrame]:
    for frame in conn.transaction_frames:
        if isinstance(frame, TransactionFrame):
            return frame
    return None


def check_nested_options(conn: Connection, options: TransactionOptions):
    """Reject options a nested scope cannot honour.

    A savepoint cannot change the isolation level or the access mode of the
    transaction it lives in. Asking for the values already in effect is
    accepted.
    """
    frame = top_frame(conn)
    if frame is None:
        return
    requested = options.isolation_level
    if requested not in (None, IsolationLevel.NONE):
        active = frame.options.isolation_level
        if active in (None, IsolationLevel.NONE):
            active = conn.isolation_level
        if requested is not active:
            raise TransactionError(
                f"Cannot use isolation level {requested.name} in a nested "
                f"transaction running at {active.name}"
            )
    if options.read_only is not None:
        active_read_only = bool(frame.options.read_only)
        if options.read_only is not active_read_only:
            raise TransactionError(
                "Cannot change the read only mode in a nested transaction"
            )


def start_transaction(conn: Connection, options: TransactionOptions) -> None:
    """Move an idle connection into a transaction

    The requested isolation level and read only mode are applied first,
    then autocommit is captured and disabled. Whatever was changed is
    recorded on a `TransactionFrame` so that `end_transaction` can put it
    back.
    """
    frame = TransactionFrame(options=options)
    conn.transaction_frames.append(frame)
    conn.in_transaction = True
    try:
        level = options.isolation_level
        if level not in (None, IsolationLevel.NONE):
            previous_level = conn.get_isolation_level()
            conn.set_isolation_level(level)
            frame.isolation_level = previous_level
        if options.read_only is not None:
            previous_read_only = conn.get_read_only()
            conn.set_read_only(options.read_only)
            frame.read_only = previous_read_only
        autocommit = conn.get_autocommit()
        conn.set_autocommit(False)
        frame.autocommit = autocommit
    except BaseException as error:
        end_transaction(conn, frame, error)
        raise
    logger.debug("Began transaction on %s", conn)


def finish_transaction(conn: Connection, frame: TransactionFrame) -> None:
    """Commit, or roll back when the connection is rollback only.

    A failed commit is rolled back. The connection is idle afterwards in
    every case.
    """
    if conn.rollback_only:
        logger.debug("%s is rollback only, rolling back", conn)
        rollback_transaction(conn, frame)
        return

    try:
        conn.commit()
    except BaseException as error:
        logger.error(
            "Commit failed on %s, attempting rollback: %s", conn, error
        )
        try:
            conn.rollback()
        except Exception as rollback_error:
            logger.critical(
                "Rollback after failed commit also failed on %s: %s",
                conn,
                rollback_error,
            )
            chain_cleanup_error(error, rollback_error)
        end_transaction(conn, frame, error)
        raise
    end_transaction(conn, frame)
    logger.info("Committed transaction on %s", conn)


def rollback_transaction(conn: Connection, frame: TransactionFrame) -> None:
    try:
        conn.rollback()
    except BaseException as error:
        logger.critical("Rollback failed on %s: %s", conn, error)
        end_transaction(conn, frame, error)
        raise
    end_transaction(conn, frame)
    logger.info("Rolled back transaction on %s", conn)


def release_savepoint(conn: Connection, savepoint: Savepoint) -> None:
    try:
        savepoint.release()
    except BaseException as error:
        try:
            savepoint.rollback()
        except Exception as rollback_error:
            conn.mark_rollback_only()
            chain_cleanup_error(error, rollback_error)
        raise
    finally:
        conn.transaction_frames.pop()


def end_transaction(
    conn: Connection,
    frame: TransactionFrame,
    error: Optional[BaseException] = None,
) -> None:
    """Restore the settings recorded on the frame and return the connection
    to idle.

    Every restoration is attempted. When ``error`` is being propagated,
    failures are attached to it. Otherwise the first failure is raised once
    the connection is idle.
    """
    failure: Optional[BaseException] = None
    for description, restore in _restorations(conn, frame):
        try:
            restore()
        except Exception as restore_error:
            logger.error(
                "Failed to restore %s on %s: %s",
                description,
                conn,
                restore_error,
            )
            if error is not None:
                chain_cleanup_error(error, restore_error)
            elif failure is None:
                failure = restore_error
            else:
                chain_cleanup_error(failure, restore_error)

    if frame in conn.transaction_frames:
        conn.transaction_frames.remove(frame)
    conn.in_transaction = False
    conn.unmark_rollback_only()

    if failure is not None:
        raise failure


def _restorations(
    conn: Connection, frame: TransactionFrame
) -> List[Tuple[str, Callable[[], None]]]:
    restorations: List[Tuple[str, Callable[[], None]]] = []
    if frame.autocommit is not UNCHANGED:
        autocommit = frame.autocommit
        restorations.append(
            ("autocommit", lambda: conn.set_autocommit(autocommit))
        )
    if frame.read_only is not UNCHANGED:
        read_only = frame.read_only
        restorations.append(
            ("read only mode", lambda: conn.set_read_only(read_only))
        )
    if frame.isolation_level is not UNCHANGED:
        level = frame.isolation_level
        restorations.append(
            ("isolation level", lambda: conn.set_isolation_level(level))
        )
    return restorations
