"""SQLAlchemy Core schema of the ``users`` table."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    true,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import translate_error

__all__ = ["USER_COLUMNS", "WRITE_COLUMNS", "ensure_schema", "metadata", "users"]

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("department", String(100)),
    Column("role", String(100)),
    Column("active", Boolean, nullable=False, server_default=true()),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
    Index("idx_users_department", "department"),
    Index("idx_users_created_at", "created_at"),
)

# Column order of every SELECT issued against the table.
USER_COLUMNS = (
    users.c.id,
    users.c.name,
    users.c.email,
    users.c.department,
    users.c.role,
    users.c.active,
    users.c.created_at,
    users.c.updated_at,
)

# Columns bound by INSERT and UPDATE statements, in statement order.
WRITE_COLUMNS = ("name", "email", "department", "role", "active", "created_at", "updated_at")


def ensure_schema(bind: Engine | Connection) -> None:
    """Create the ``users`` table and its indexes when they are missing."""

    try:
        metadata.create_all(bind, tables=[users])
    except SQLAlchemyError as exc:
        raise translate_error(exc, "Failed to initialise users schema") from exc
