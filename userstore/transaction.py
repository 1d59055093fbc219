"""Manual-commit transaction scopes over provider connections.

A :class:`TransactionScope` moves through ``IDLE -> ACTIVE -> IDLE``: entering
the scope acquires a connection and turns auto-commit off, leaving it commits
or rolls back.  A failing rollback moves the scope to the terminal ``FAILED``
state and surfaces as :class:`~userstore.exceptions.TransactionRollbackError`.
Whatever happens, auto-commit is restored (or the connection invalidated) and
the connection is released before the scope exits.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from types import TracebackType
from typing import TypeVar

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .connection import ConnectionProvider, set_autocommit
from .exceptions import TransactionRollbackError, translate_error

__all__ = ["TransactionScope", "TransactionState", "run_in_transaction"]

T = TypeVar("T")

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    """Lifecycle states of a transaction scope."""

    IDLE = "idle"
    ACTIVE = "active"
    FAILED = "failed"


class TransactionScope:
    """Context manager yielding a connection in manual-commit mode.

    Driver failures raised inside the block are rolled back and re-raised as
    :mod:`userstore` errors; other exceptions are rolled back and propagate
    unchanged.
    """

    def __init__(self, provider: ConnectionProvider) -> None:
        self._provider = provider
        self._connection: Connection | None = None
        self._state = TransactionState.IDLE

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise RuntimeError("Transaction scope is not active")
        return self._connection

    def __enter__(self) -> Connection:
        if self._state is not TransactionState.IDLE:
            raise RuntimeError(f"Cannot begin a transaction from state '{self._state.value}'")

        connection = self._provider.acquire()
        try:
            set_autocommit(connection, False)
            connection.begin()
        except SQLAlchemyError as exc:
            self._release(connection)
            raise translate_error(exc, "Unable to begin transaction") from exc

        self._connection = connection
        self._state = TransactionState.ACTIVE
        logger.debug("Transaction started")
        return connection

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool:
        connection = self.connection
        try:
            if exc is None:
                self._commit(connection)
                return False

            self._rollback(connection, exc)
            if isinstance(exc, SQLAlchemyError):
                raise translate_error(exc, "Transaction rolled back") from exc
            return False
        finally:
            self._release(connection)

    def _commit(self, connection: Connection) -> None:
        try:
            connection.commit()
        except SQLAlchemyError as exc:
            self._rollback(connection, exc)
            raise translate_error(exc, "Transaction commit failed") from exc
        self._state = TransactionState.IDLE
        logger.debug("Transaction committed")

    def _rollback(self, connection: Connection, cause: BaseException) -> None:
        try:
            connection.rollback()
        except Exception as rollback_exc:
            self._state = TransactionState.FAILED
            logger.critical(
                "Transaction rollback failed",
                extra={"cause": repr(cause), "rollback_error": repr(rollback_exc)},
            )
            raise TransactionRollbackError(
                f"Rollback failed: {rollback_exc}", rollback_error=rollback_exc
            ) from cause
        self._state = TransactionState.IDLE
        logger.warning("Transaction rolled back", extra={"cause": repr(cause)})

    def _release(self, connection: Connection) -> None:
        try:
            if self._state is TransactionState.FAILED:
                connection.invalidate()
            else:
                try:
                    set_autocommit(connection, True)
                except Exception:
                    logger.error("Failed to restore auto-commit; discarding connection", exc_info=True)
                    connection.invalidate()
        finally:
            connection.close()
            self._connection = None


def run_in_transaction(provider: ConnectionProvider, work: Callable[[Connection], T]) -> T:
    """Run *work* against one connection and commit only if it returns normally."""

    with TransactionScope(provider) as connection:
        return work(connection)
