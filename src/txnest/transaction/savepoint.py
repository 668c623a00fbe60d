"""
Named rollback points inside an active transaction, used for nested scopes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import uuid4

from .interfaces import TransactionError

if TYPE_CHECKING:
    from txnest.connection import Connection

logger = logging.getLogger(__name__)


class Savepoint:
    """
    A savepoint marks a point inside an active transaction that can be
    rolled back to without aborting the whole transaction.
    """

    def __init__(self, name: str, conn: Connection):
        self.name = name
        self.conn = conn
        self._released = False

    @classmethod
    def create(cls, conn: Connection) -> Savepoint:
        """Create a uniquely named savepoint on the connection"""
        if not conn.in_transaction:
            raise TransactionError(
                f"Cannot create a savepoint on {conn} - no active transaction"
            )
        name = f"txnest_sp_{uuid4().hex[:12]}"
        conn.savepoint(name)
        logger.debug("Created savepoint %s on %s", name, conn)
        return cls(name, conn)

    def rollback(self) -> None:
        """Rollback to this savepoint"""
        if self._released:
            raise TransactionError(f"Savepoint {self.name} already released")

        logger.debug("Rolling back to savepoint %s", self.name)
        try:
            self.conn.rollback_to_savepoint(self.name)
        except Exception as e:
            logger.error(
                "Failed to roll back to savepoint %s: %s", self.name, e
            )
            raise
        finally:
            self._released = True
        logger.info("Rolled back to savepoint %s", self.name)

    def release(self) -> None:
        """Release this savepoint, keeping its changes in the enclosing
        transaction"""
        if self._released:
            raise TransactionError(f"Savepoint {self.name} already released")

        logger.debug("Releasing savepoint %s", self.name)
        try:
            self.conn.release_savepoint(self.name)
        except Exception as e:
            logger.error("Failed to release savepoint %s: %s", self.name, e)
            raise
        self._released = True

    @property
    def is_released(self) -> bool:
        """Check if this savepoint has been released"""
        return self._released

    def __str__(self) -> str:
        status = "released" if self._released else "active"
        return f"<Savepoint {self.name} ({status})>"
