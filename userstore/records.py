from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

__all__ = ["ColumnDescriptor", "CreateRequest", "QueryFilter", "UpdateRequest", "User"]


@dataclass(frozen=True, slots=True)
class User:
    """A row of the ``users`` table.

    ``id`` is ``None`` only for a transient record that has not been inserted
    yet; the database assigns it on insert and it never changes afterwards.
    """

    name: str
    email: str
    department: str | None = None
    role: str | None = None
    active: bool = True
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class CreateRequest:
    """Fields supplied by callers when registering a new user."""

    name: str
    email: str
    department: str | None = None
    role: str | None = None

    def to_user(self, now: datetime) -> User:
        return User(
            name=self.name,
            email=self.email,
            department=self.department,
            role=self.role,
            active=True,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class UpdateRequest:
    """Partial update; ``None`` keeps the stored value of a field."""

    name: str | None = None
    email: str | None = None
    department: str | None = None
    role: str | None = None
    active: bool | None = None

    def apply_to(self, user: User, now: datetime) -> User:
        """Return *user* with the supplied fields overwritten and ``updated_at`` set to *now*."""

        changes: dict[str, object] = {
            key: value
            for key, value in (
                ("name", self.name),
                ("email", self.email),
                ("department", self.department),
                ("role", self.role),
                ("active", self.active),
            )
            if value is not None
        }
        return replace(user, updated_at=now, **changes)


@dataclass(frozen=True, slots=True)
class QueryFilter:
    """Optional search predicates plus mandatory pagination."""

    department: str | None = None
    role: str | None = None
    active: bool | None = None
    page: int = 0
    size: int = 10

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("page must be zero or positive")
        if self.size <= 0:
            raise ValueError("size must be a positive integer")

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Schema information of a single table column."""

    name: str
    type_name: str
    size: int | None
    nullable: bool
    ordinal_position: int
