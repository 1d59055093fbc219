"""Record access operations for the ``users`` table."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Optional, TypeVar

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .batch import batch_insert_users
from .connection import ConnectionProvider, connection_scope
from .exceptions import (
    ConnectivityError,
    NotFoundError,
    PersistenceError,
    translate_error,
)
from .introspection import DatabaseInfo, describe_connection, get_database_info, get_table_columns
from .mapper import row_to_user, row_to_users, user_to_params
from .models import ensure_schema
from .query_builder import build_search_query
from .records import ColumnDescriptor, CreateRequest, QueryFilter, UpdateRequest, User
from .statements import (
    COUNT_ACTIVE_BY_DEPARTMENT,
    DELETE_BY_ID,
    DIAGNOSTIC_QUERY,
    INSERT_USER,
    SELECT_ACTIVE_BY_DEPARTMENT,
    SELECT_ALL,
    SELECT_BY_ID,
    UPDATE_BY_ID,
    update_parameters,
)
from .transaction import run_in_transaction

__all__ = ["UserRepository"]

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    """Statement execution against the ``users`` table.

    Every public method acquires its own connection from the provider and
    releases it before returning.  Driver failures surface as
    :mod:`userstore.exceptions` errors with the driver error as cause.
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        *,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._provider = provider
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def _execute(self, func: Callable[[Connection], T], *, failure: str) -> T:
        try:
            with connection_scope(self._provider) as connection:
                return func(connection)
        except SQLAlchemyError as exc:
            self._logger.error(failure, extra={"error": repr(exc)})
            raise translate_error(exc, failure) from exc

    # ------------------------------------------------------------------
    # Diagnostics
    def test_connection(self) -> str:
        """Run a diagnostic query and describe the backend that answered it."""

        def _probe(connection: Connection) -> str:
            if connection.closed or connection.invalidated:
                raise ConnectivityError("The database connection is not open")
            row = connection.execute(DIAGNOSTIC_QUERY).first()
            if row is None:
                raise ConnectivityError("Diagnostic query returned no rows")
            info = describe_connection(connection)
            database = connection.engine.url.database or "-"
            return (
                f"Connected to {info.product_name} {info.product_version}"
                f" | database: {database} | test: {row.test}"
            )

        try:
            return self._execute(_probe, failure="Connection test failed")
        except PersistenceError as exc:
            if isinstance(exc, ConnectivityError):
                raise
            raise ConnectivityError(str(exc)) from exc

    def get_database_info(self) -> DatabaseInfo:
        return get_database_info(self._provider)

    def get_table_columns(self, table_name: str) -> list[ColumnDescriptor]:
        return get_table_columns(self._provider, table_name)

    def ensure_schema(self) -> None:
        """Create the ``users`` table on the provider's database when missing."""

        self._execute(ensure_schema, failure="Failed to initialise users schema")

    # ------------------------------------------------------------------
    # Single statement operations
    def create_user(self, request: CreateRequest) -> User:
        """Insert a new active user and return it with its generated id."""

        user = request.to_user(self._clock())

        def _insert(connection: Connection) -> User:
            result = connection.execute(INSERT_USER, user_to_params(user))
            if result.rowcount == 0:
                raise PersistenceError("INSERT did not affect any row")
            primary_key = result.inserted_primary_key
            if not primary_key or primary_key[0] is None:
                raise PersistenceError("INSERT succeeded but no id was generated")
            return User(
                id=int(primary_key[0]),
                name=user.name,
                email=user.email,
                department=user.department,
                role=user.role,
                active=user.active,
                created_at=user.created_at,
                updated_at=user.updated_at,
            )

        created = self._execute(_insert, failure=f"Failed to create user '{request.email}'")
        self._logger.info("Created user", extra={"user_id": created.id})
        return created

    def find_user_by_id(self, user_id: int) -> User | None:
        """Return the user with *user_id*, or ``None`` when no row matches."""

        def _select(connection: Connection) -> User | None:
            row = connection.execute(SELECT_BY_ID, {"user_id": user_id}).first()
            return None if row is None else row_to_user(row)

        user = self._execute(_select, failure=f"Failed to load user {user_id}")
        self._logger.debug("Loaded user", extra={"user_id": user_id, "found": user is not None})
        return user

    def update_user(self, user_id: int, request: UpdateRequest) -> User:
        """Merge *request* into the stored row and return the stored result.

        The whole row is written back, so a concurrent update of other fields
        between the read and the write is lost.
        """

        def _update(connection: Connection) -> User:
            row = connection.execute(SELECT_BY_ID, {"user_id": user_id}).first()
            if row is None:
                raise NotFoundError(f"No user with id {user_id}")
            merged = request.apply_to(row_to_user(row), self._clock())
            result = connection.execute(UPDATE_BY_ID, update_parameters(user_id, user_to_params(merged)))
            if result.rowcount == 0:
                raise PersistenceError(f"UPDATE of user {user_id} did not affect any row")
            row = connection.execute(SELECT_BY_ID, {"user_id": user_id}).first()
            if row is None:
                raise PersistenceError(f"User {user_id} disappeared after update")
            return row_to_user(row)

        updated = self._execute(_update, failure=f"Failed to update user {user_id}")
        self._logger.info("Updated user", extra={"user_id": user_id})
        return updated

    def delete_user(self, user_id: int) -> bool:
        """Delete the user; ``False`` when no row had that id."""

        def _delete(connection: Connection) -> bool:
            return connection.execute(DELETE_BY_ID, {"user_id": user_id}).rowcount > 0

        deleted = self._execute(_delete, failure=f"Failed to delete user {user_id}")
        self._logger.info("Deleted user", extra={"user_id": user_id, "deleted": deleted})
        return deleted

    def find_all(self) -> list[User]:
        """Every user, most recently created first."""

        def _select(connection: Connection) -> list[User]:
            return row_to_users(connection.execute(SELECT_ALL))

        listed = self._execute(_select, failure="Failed to list users")
        self._logger.debug("Listed users", extra={"count": len(listed)})
        return listed

    def find_users_by_department(self, department: str) -> list[User]:
        """Active users of *department* ordered by name."""

        def _select(connection: Connection) -> list[User]:
            return row_to_users(connection.execute(SELECT_ACTIVE_BY_DEPARTMENT, {"department": department}))

        return self._execute(_select, failure=f"Failed to list users of department '{department}'")

    def execute_count_by_department(self, department: str) -> int:
        """Count active users of *department*; unknown departments count zero."""

        def _count(connection: Connection) -> int:
            count = connection.execute(COUNT_ACTIVE_BY_DEPARTMENT, {"department": department}).scalar()
            if count is None:
                raise PersistenceError("COUNT query returned no row")
            return int(count)

        return self._execute(_count, failure=f"Failed to count users of department '{department}'")

    def search_users(self, query_filter: QueryFilter) -> list[User]:
        """Page through users matching the criteria set on *query_filter*."""

        query = build_search_query(query_filter)
        self._logger.debug("Searching users", extra={"parameters": list(query.parameters)})

        def _select(connection: Connection) -> list[User]:
            return row_to_users(connection.execute(query.statement))

        return self._execute(_select, failure="User search failed")

    # ------------------------------------------------------------------
    # Multi statement operations
    def transfer_data(self, users: Sequence[User]) -> list[User]:
        """Insert every user in one transaction; all rows or none are stored."""

        now = self._clock()

        def _transfer(connection: Connection) -> list[User]:
            stored = []
            for user in users:
                params = user_to_params(user)
                if params["created_at"] is None:
                    params["created_at"] = now
                params["updated_at"] = now
                result = connection.execute(INSERT_USER, params)
                stored.append(
                    User(
                        id=int(result.inserted_primary_key[0]),
                        name=user.name,
                        email=user.email,
                        department=user.department,
                        role=user.role,
                        active=params["active"],
                        created_at=params["created_at"],
                        updated_at=now,
                    )
                )
            return stored

        try:
            stored = run_in_transaction(self._provider, _transfer)
        except PersistenceError:
            self._logger.error("Transfer rolled back", extra={"batch_size": len(users)})
            raise
        self._logger.info("Transferred users", extra={"batch_size": len(stored)})
        return stored

    def batch_insert_users(self, users: Sequence[User]) -> int:
        """Insert *users* as one batch; returns the amount of rows inserted."""

        return batch_insert_users(self._provider, users, clock=self._clock)
