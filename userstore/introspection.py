"""Database and table metadata reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import metadata

from sqlalchemy import inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from .connection import ConnectionProvider, connection_scope
from .exceptions import NotFoundError, translate_error
from .records import ColumnDescriptor

__all__ = ["DatabaseInfo", "get_database_info", "get_table_columns"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DatabaseInfo:
    """Backend, driver and capability summary of a live connection."""

    product_name: str
    product_version: str
    driver_name: str
    driver_version: str
    url: str
    user: str | None
    max_connections: int | None
    supports_transactions: bool
    supports_batch_updates: bool

    def format(self) -> str:
        """Render the report as ``label: value`` lines."""

        max_connections = (
            "unlimited or not reported" if self.max_connections is None else str(self.max_connections)
        )
        lines = [
            "--- Database metadata ---",
            f"Product: {self.product_name}",
            f"Product version: {self.product_version}",
            f"Driver: {self.driver_name}",
            f"Driver version: {self.driver_version}",
            f"Connection URL: {self.url}",
            f"User: {self.user or '-'}",
            f"Max connections: {max_connections}",
            f"Supports transactions: {self.supports_transactions}",
            f"Supports batch updates: {self.supports_batch_updates}",
        ]
        return "\n".join(lines) + "\n"


def _server_version(connection: Connection) -> str:
    info = connection.dialect.server_version_info
    if not info:
        return "unknown"
    return ".".join(str(part) for part in info)


def _driver_version(connection: Connection) -> str:
    dbapi = connection.dialect.dbapi
    value = getattr(dbapi, "__version__", None)
    if value:
        return str(value).split(" ", 1)[0]
    # Stdlib drivers such as sqlite3 carry no version of their own.
    try:
        return metadata.version(dbapi.__name__.split(".", 1)[0])
    except (AttributeError, metadata.PackageNotFoundError):
        return "unknown"


def _max_connections(connection: Connection) -> int | None:
    pool = connection.engine.pool
    size = getattr(pool, "size", None)
    overflow = getattr(pool, "_max_overflow", None)
    if not callable(size) or overflow is None or overflow < 0:
        return None
    return int(size()) + int(overflow)


def _supports_transactions(connection: Connection) -> bool:
    dbapi_connection = connection.connection.dbapi_connection
    try:
        levels = connection.dialect.get_isolation_level_values(dbapi_connection)
    except NotImplementedError:
        return False
    return any(level != "AUTOCOMMIT" for level in levels)


def describe_connection(connection: Connection) -> DatabaseInfo:
    dialect = connection.dialect
    url = connection.engine.url
    return DatabaseInfo(
        product_name=dialect.name,
        product_version=_server_version(connection),
        driver_name=dialect.driver,
        driver_version=_driver_version(connection),
        url=url.render_as_string(hide_password=True),
        user=url.username,
        max_connections=_max_connections(connection),
        supports_transactions=_supports_transactions(connection),
        supports_batch_updates=bool(dialect.supports_multivalues_insert or dialect.use_insertmanyvalues),
    )


def get_database_info(provider: ConnectionProvider) -> DatabaseInfo:
    """Describe the backend reached through *provider*."""

    try:
        with connection_scope(provider) as connection:
            return describe_connection(connection)
    except SQLAlchemyError as exc:
        raise translate_error(exc, "Failed to read database metadata") from exc


def get_table_columns(provider: ConnectionProvider, table_name: str) -> list[ColumnDescriptor]:
    """List the columns of *table_name* in declaration order."""

    try:
        with connection_scope(provider) as connection:
            columns = inspect(connection).get_columns(table_name)
    except NoSuchTableError:
        columns = []
    except SQLAlchemyError as exc:
        raise translate_error(exc, f"Failed to read columns of table '{table_name}'") from exc

    if not columns:
        raise NotFoundError(f"Table '{table_name}' was not found in the database")

    descriptors = []
    for position, column in enumerate(columns, start=1):
        column_type = column["type"]
        size = getattr(column_type, "length", None) or getattr(column_type, "precision", None)
        descriptors.append(
            ColumnDescriptor(
                name=column["name"],
                type_name=str(column_type).split("(", 1)[0].upper(),
                size=size,
                nullable=bool(column.get("nullable", True)),
                ordinal_position=position,
            )
        )
    logger.debug("Read table columns", extra={"table": table_name, "columns": len(descriptors)})
    return descriptors
