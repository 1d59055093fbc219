"""Fixed-shape parameterized statements issued against the ``users`` table."""

from __future__ import annotations

from typing import Any

from sqlalchemy import bindparam, delete, func, insert, select, text, true, update

from .models import USER_COLUMNS, users

__all__ = [
    "COUNT_ACTIVE_BY_DEPARTMENT",
    "DELETE_BY_ID",
    "DIAGNOSTIC_QUERY",
    "INSERT_USER",
    "SELECT_ACTIVE_BY_DEPARTMENT",
    "SELECT_ALL",
    "SELECT_BY_ID",
    "UPDATE_BY_ID",
    "update_parameters",
]

DIAGNOSTIC_QUERY = text("SELECT 1 AS test")

SELECT_BY_ID = select(*USER_COLUMNS).where(users.c.id == bindparam("user_id"))

SELECT_ALL = select(*USER_COLUMNS).order_by(users.c.created_at.desc(), users.c.id.desc())

SELECT_ACTIVE_BY_DEPARTMENT = (
    select(*USER_COLUMNS)
    .where(users.c.department == bindparam("department"), users.c.active.is_(true()))
    .order_by(users.c.name.asc(), users.c.id.asc())
)

COUNT_ACTIVE_BY_DEPARTMENT = (
    select(func.count())
    .select_from(users)
    .where(users.c.department == bindparam("department"), users.c.active.is_(true()))
)

# Values are bound per execution from ``mapper.user_to_params``.
INSERT_USER = insert(users)

_UPDATED_COLUMNS = ("name", "email", "department", "role", "active", "updated_at")

UPDATE_BY_ID = (
    update(users)
    .where(users.c.id == bindparam("user_id"))
    .values({column: bindparam(f"new_{column}") for column in _UPDATED_COLUMNS})
)

DELETE_BY_ID = delete(users).where(users.c.id == bindparam("user_id"))


def update_parameters(user_id: int, params: dict[str, Any]) -> dict[str, Any]:
    """Translate column keyed *params* into the bind names of :data:`UPDATE_BY_ID`."""

    bound = {f"new_{column}": params[column] for column in _UPDATED_COLUMNS}
    bound["user_id"] = user_id
    return bound
