"""Connection provider contract and scoped connection acquisition.

Every operation of :mod:`userstore` obtains its connection from a
:class:`ConnectionProvider`.  Connections handed out by a provider are in
auto-commit mode: each statement is durable as soon as it executes.  Code
that needs several statements to succeed or fail together switches the
connection to manual commit through :class:`userstore.transaction.TransactionScope`,
which restores auto-commit before the connection is released.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol, runtime_checkable

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import DatabaseSettings
from .engine import create_engine_from_config
from .exceptions import ConnectivityError
from .retry import AcquisitionRetry, RetryPolicy

__all__ = [
    "AUTOCOMMIT",
    "ConnectionProvider",
    "EngineConnectionProvider",
    "connection_scope",
    "create_provider",
    "is_autocommit",
    "set_autocommit",
]

AUTOCOMMIT = "AUTOCOMMIT"

logger = logging.getLogger(__name__)


@runtime_checkable
class ConnectionProvider(Protocol):
    """Supplies live connections in auto-commit mode."""

    def acquire(self) -> Connection:  # pragma: no cover - runtime duck typing
        """Return a connection owned by the caller until it is closed."""


class EngineConnectionProvider:
    """Hand out pooled connections from a SQLAlchemy :class:`Engine`.

    Parameters
    ----------
    engine:
        Engine whose pool supplies the connections.
    retry_policy:
        Policy applied to transient failures while connecting.
    owns_engine:
        Dispose the engine when :meth:`close` is called.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        retry_policy: RetryPolicy | None = None,
        owns_engine: bool = True,
    ) -> None:
        self._engine = engine
        self._retry = AcquisitionRetry(
            retry_policy or RetryPolicy(), logger=logger, backend=engine.dialect.name
        )
        self._owns_engine = owns_engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def acquire(self) -> Connection:
        def _connect() -> Connection:
            connection = self._engine.connect()
            try:
                set_autocommit(connection, True)
            except Exception:
                connection.close()
                raise
            return connection

        try:
            return self._retry(_connect)
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to acquire database connection",
                extra={"backend": self._engine.dialect.name, "url": str(self._engine.url)},
            )
            raise ConnectivityError(f"Unable to acquire a database connection: {exc}") from exc

    def close(self) -> None:
        """Dispose the underlying engine if the provider owns it."""

        if self._owns_engine:
            self._engine.dispose()


def is_autocommit(connection: Connection) -> bool:
    """Return ``True`` when *connection* commits after every statement."""

    return connection.get_execution_options().get("isolation_level") == AUTOCOMMIT


def set_autocommit(connection: Connection, enabled: bool) -> None:
    """Toggle the driver level auto-commit mode of *connection*.

    Must be called while no transaction is in progress on the connection.
    """

    if is_autocommit(connection) is enabled:
        return
    if enabled:
        connection.execution_options(isolation_level=AUTOCOMMIT)
    else:
        connection.execution_options(isolation_level=connection.default_isolation_level)


@contextmanager
def connection_scope(provider: ConnectionProvider) -> Iterator[Connection]:
    """Acquire one connection for the duration of the block and always release it."""

    connection = provider.acquire()
    try:
        yield connection
    finally:
        connection.close()


def create_provider(settings: DatabaseSettings) -> EngineConnectionProvider:
    """Build an engine for *settings* and wrap it in a provider that owns it."""

    engine = create_engine_from_config(settings)
    return EngineConnectionProvider(engine, retry_policy=settings.retry)
