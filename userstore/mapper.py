"""Conversion between ``users`` rows and :class:`~userstore.records.User` records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from .exceptions import MappingError
from .models import WRITE_COLUMNS
from .records import User

__all__ = ["row_to_user", "row_to_users", "user_to_params"]


def _as_mapping(row: Any) -> Mapping[str, Any]:
    mapping = getattr(row, "_mapping", row)
    if not isinstance(mapping, Mapping):
        raise MappingError(f"Cannot read named columns from {type(row).__name__}")
    return mapping


def _column(row: Mapping[str, Any], name: str) -> Any:
    try:
        return row[name]
    except KeyError as exc:
        raise MappingError(f"Result row has no column '{name}'") from exc


def _text(value: Any, column: str, *, required: bool) -> str | None:
    if value is None:
        if required:
            raise MappingError(f"Column '{column}' must not be null")
        return None
    if not isinstance(value, str):
        raise MappingError(f"Column '{column}' holds {type(value).__name__}, expected str")
    return value


def _identifier(value: Any) -> int:
    # bool is an int subclass but never a valid identifier.
    if isinstance(value, bool) or not isinstance(value, int):
        raise MappingError(f"Column 'id' holds {type(value).__name__}, expected int")
    return value


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    # SQLite and MySQL report booleans as 0/1 integers.
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise MappingError(f"Column 'active' holds {value!r}, expected a boolean")


def _timestamp(value: Any, column: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as exc:
            raise MappingError(f"Column '{column}' holds an unparseable timestamp {value!r}") from exc
    if not isinstance(value, datetime):
        raise MappingError(f"Column '{column}' holds {type(value).__name__}, expected datetime")
    if value.tzinfo is None:
        # Backends without offset storage hand back the UTC wall clock.
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_user(row: Any) -> User:
    """Build a :class:`User` from a result row carrying the ``users`` columns."""

    mapping = _as_mapping(row)
    return User(
        id=_identifier(_column(mapping, "id")),
        name=_text(_column(mapping, "name"), "name", required=True),
        email=_text(_column(mapping, "email"), "email", required=True),
        department=_text(_column(mapping, "department"), "department", required=False),
        role=_text(_column(mapping, "role"), "role", required=False),
        active=_flag(_column(mapping, "active")),
        created_at=_timestamp(_column(mapping, "created_at"), "created_at"),
        updated_at=_timestamp(_column(mapping, "updated_at"), "updated_at"),
    )


def row_to_users(rows: Iterable[Any]) -> list[User]:
    return [row_to_user(row) for row in rows]


def _utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def user_to_params(user: User) -> dict[str, Any]:
    """Return the bound values of *user* keyed and ordered like ``WRITE_COLUMNS``."""

    values = {
        "name": user.name,
        "email": user.email,
        "department": user.department,
        "role": user.role,
        "active": bool(user.active),
        "created_at": _utc(user.created_at),
        "updated_at": _utc(user.updated_at),
    }
    return {column: values[column] for column in WRITE_COLUMNS}
