"""Domain specific exceptions raised by the user record access layer."""

from __future__ import annotations

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
)

__all__ = [
    "ConnectivityError",
    "DuplicateKeyError",
    "MappingError",
    "NotFoundError",
    "PersistenceError",
    "RetryableDatabaseError",
    "TransactionRollbackError",
    "UserStoreError",
    "translate_error",
]

# SQLSTATE for unique_violation (PostgreSQL, H2, DB2) and the MySQL error code.
_UNIQUE_SQLSTATES = frozenset({"23505"})
_MYSQL_DUPLICATE_ENTRY = 1062


class UserStoreError(RuntimeError):
    """Base class for every failure surfaced by :mod:`userstore`."""


class PersistenceError(UserStoreError):
    """A statement or transaction failed, or a write affected no rows."""


class ConnectivityError(PersistenceError):
    """The connection could not be acquired or is no longer usable."""


class DuplicateKeyError(PersistenceError):
    """The database rejected a row because of a uniqueness constraint."""


class TransactionRollbackError(PersistenceError):
    """Rolling back a failed transaction failed as well.

    ``__cause__`` holds the failure that triggered the rollback while
    :attr:`rollback_error` holds the error raised by the rollback itself.
    """

    def __init__(self, message: str, *, rollback_error: BaseException) -> None:
        super().__init__(message)
        self.rollback_error = rollback_error


class NotFoundError(UserStoreError):
    """An expected row or table does not exist."""


class MappingError(UserStoreError):
    """A result row cannot be converted into a domain record."""


class RetryableDatabaseError(ConnectivityError):
    """Marker exception used to force retry logic for known transient states."""


def _is_unique_violation(error: IntegrityError) -> bool:
    original = error.orig
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate in _UNIQUE_SQLSTATES:
        return True
    args = getattr(original, "args", ())
    if args and args[0] == _MYSQL_DUPLICATE_ENTRY:
        return True
    text = str(original).lower()
    return "unique" in text or "duplicate" in text


def translate_error(error: BaseException, message: str) -> UserStoreError:
    """Map a driver level failure onto the :mod:`userstore` error taxonomy.

    The caller is expected to ``raise translate_error(exc, msg) from exc`` so
    the original failure stays attached as the cause.  Errors that already
    belong to the taxonomy are returned unchanged.
    """

    if isinstance(error, UserStoreError):
        return error
    if isinstance(error, IntegrityError) and _is_unique_violation(error):
        return DuplicateKeyError(f"{message}: {error.orig}")
    if isinstance(error, (DisconnectionError, InterfaceError)):
        return ConnectivityError(f"{message}: {error}")
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return ConnectivityError(f"{message}: {error.orig}")
    if isinstance(error, DBAPIError):
        return PersistenceError(f"{message}: {error.orig}")
    return PersistenceError(f"{message}: {error}")
