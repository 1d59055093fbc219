"""Tests for the user repository against a SQLite database."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select, text

from userstore import repository as repository_module
from userstore.connection import EngineConnectionProvider, connection_scope
from userstore.exceptions import ConnectivityError, DuplicateKeyError, NotFoundError, PersistenceError
from userstore.models import users
from userstore.records import CreateRequest, QueryFilter, UpdateRequest, User
from userstore.repository import UserRepository
from userstore.statements import DELETE_BY_ID, UPDATE_BY_ID


def _create(repository: UserRepository, name: str, department: str = "Sales", role: str = "rep") -> User:
    email = f"{name.lower().replace(' ', '.')}@example.com"
    return repository.create_user(CreateRequest(name=name, email=email, department=department, role=role))


def _row_count(provider: EngineConnectionProvider) -> int:
    with provider.engine.connect() as connection:
        return int(connection.execute(select(func.count()).select_from(users)).scalar_one())


class _ClosedConnectionProvider:
    def __init__(self, provider: EngineConnectionProvider) -> None:
        self._provider = provider

    def acquire(self):
        connection = self._provider.acquire()
        connection.close()
        return connection


def test_test_connection_reports_backend(repository: UserRepository) -> None:
    status = repository.test_connection()

    assert status.startswith("Connected to sqlite")
    assert "test: 1" in status
    assert "users.db" in status


def test_test_connection_rejects_closed_connection(provider: EngineConnectionProvider) -> None:
    repository = UserRepository(_ClosedConnectionProvider(provider))

    with pytest.raises(ConnectivityError):
        repository.test_connection()


def test_test_connection_requires_a_diagnostic_row(
    repository: UserRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(repository_module, "DIAGNOSTIC_QUERY", text("SELECT 1 AS test WHERE 1 = 0"))

    with pytest.raises(ConnectivityError, match="no rows"):
        repository.test_connection()


def test_create_user_assigns_id_and_timestamps(repository: UserRepository) -> None:
    user = repository.create_user(
        CreateRequest(name="Ada Lovelace", email="ada@example.com", department="R&D", role="engineer")
    )

    assert user.id is not None
    assert user.active is True
    assert user.created_at is not None
    assert user.created_at == user.updated_at
    assert user.created_at.tzinfo is not None


def test_created_user_reads_back_equal(repository: UserRepository) -> None:
    created = _create(repository, "Grace Hopper")

    assert repository.find_user_by_id(created.id) == created


def test_create_user_rejects_duplicate_email(repository: UserRepository) -> None:
    _create(repository, "Alan Turing")

    with pytest.raises(DuplicateKeyError) as excinfo:
        repository.create_user(CreateRequest(name="Imposter", email="alan.turing@example.com"))

    assert excinfo.value.__cause__ is not None


def test_find_user_by_id_returns_none_when_missing(repository: UserRepository) -> None:
    assert repository.find_user_by_id(404) is None


def test_update_user_merges_partial_fields(repository: UserRepository) -> None:
    created = _create(repository, "Barbara Liskov", department="Research", role="scientist")

    updated = repository.update_user(created.id, UpdateRequest(role="professor", active=False))

    assert updated.id == created.id
    assert updated.name == created.name
    assert updated.email == created.email
    assert updated.department == "Research"
    assert updated.role == "professor"
    assert updated.active is False
    assert updated.created_at == created.created_at
    assert updated.updated_at > created.updated_at
    assert repository.find_user_by_id(created.id) == updated


def test_update_user_on_missing_id_raises_without_changes(
    repository: UserRepository, provider: EngineConnectionProvider
) -> None:
    _create(repository, "Edsger Dijkstra")

    with pytest.raises(NotFoundError):
        repository.update_user(999, UpdateRequest(name="Nobody"))

    assert _row_count(provider) == 1
    assert [user.name for user in repository.find_all()] == ["Edsger Dijkstra"]


def test_update_user_rejects_email_taken_by_other_row(repository: UserRepository) -> None:
    first = _create(repository, "Ken Thompson")
    second = _create(repository, "Dennis Ritchie")

    with pytest.raises(DuplicateKeyError):
        repository.update_user(second.id, UpdateRequest(email=first.email))

    assert repository.find_user_by_id(second.id) == second


def test_delete_user_then_find_reports_not_found(repository: UserRepository) -> None:
    created = _create(repository, "John McCarthy")

    assert repository.delete_user(created.id) is True
    assert repository.find_user_by_id(created.id) is None
    assert repository.delete_user(created.id) is False


def test_find_all_orders_by_creation_time_descending(repository: UserRepository) -> None:
    created = [_create(repository, f"User {index}") for index in range(5)]

    listed = repository.find_all()

    assert len(listed) == 5
    assert [user.id for user in listed] == [user.id for user in reversed(created)]
    timestamps = [user.created_at for user in listed]
    assert timestamps == sorted(timestamps, reverse=True)


def test_find_users_by_department_returns_active_rows_sorted_by_name(repository: UserRepository) -> None:
    _create(repository, "Zed", department="Sales")
    _create(repository, "Amy", department="Sales")
    inactive = _create(repository, "Bob", department="Sales")
    _create(repository, "Carl", department="Support")
    repository.update_user(inactive.id, UpdateRequest(active=False))

    listed = repository.find_users_by_department("Sales")

    assert [user.name for user in listed] == ["Amy", "Zed"]


def test_count_by_department_counts_active_rows(repository: UserRepository) -> None:
    _create(repository, "One", department="Sales")
    _create(repository, "Two", department="Sales")
    retired = _create(repository, "Three", department="Sales")
    repository.update_user(retired.id, UpdateRequest(active=False))

    assert repository.execute_count_by_department("Sales") == 2
    assert repository.execute_count_by_department("Nonexistent") == 0


def test_search_users_returns_requested_page(repository: UserRepository) -> None:
    sales = [_create(repository, f"Sales {index:02d}", department="Sales") for index in range(25)]
    for index in range(5):
        _create(repository, f"Support {index}", department="Support")

    page = repository.search_users(QueryFilter(department="Sales", page=1, size=10))

    assert [user.id for user in page] == [user.id for user in sales[10:20]]


def test_search_users_without_criteria_pages_every_row(repository: UserRepository) -> None:
    created = [_create(repository, f"Person {index}") for index in range(3)]

    assert [user.id for user in repository.search_users(QueryFilter(size=2))] == [
        created[0].id,
        created[1].id,
    ]
    assert [user.id for user in repository.search_users(QueryFilter(page=1, size=2))] == [created[2].id]


def test_search_users_filters_by_role_and_active_flag(repository: UserRepository) -> None:
    lead = _create(repository, "Lead", role="lead")
    former_lead = _create(repository, "Former Lead", role="lead")
    _create(repository, "Rep", role="rep")
    repository.update_user(former_lead.id, UpdateRequest(active=False))

    active_leads = repository.search_users(QueryFilter(role="lead", active=True))
    inactive = repository.search_users(QueryFilter(active=False))

    assert [user.id for user in active_leads] == [lead.id]
    assert [user.id for user in inactive] == [former_lead.id]


def test_transfer_data_inserts_every_user(repository: UserRepository) -> None:
    joined = datetime(2020, 5, 17, 9, 30, tzinfo=timezone.utc)
    stored = repository.transfer_data(
        [
            User(name="Linus", email="linus@example.com", department="Kernel"),
            User(name="Guido", email="guido@example.com", active=False, created_at=joined),
        ]
    )

    assert [user.name for user in stored] == ["Linus", "Guido"]
    assert all(user.id is not None for user in stored)
    assert stored[1].created_at == joined
    assert stored[1].active is False
    assert repository.find_user_by_id(stored[1].id) == stored[1]


def test_transfer_data_is_all_or_nothing(
    repository: UserRepository, provider: EngineConnectionProvider
) -> None:
    existing = _create(repository, "Margaret Hamilton")

    with pytest.raises(DuplicateKeyError):
        repository.transfer_data(
            [
                User(name="First", email="first@example.com"),
                User(name="Clash", email=existing.email),
                User(name="Third", email="third@example.com"),
            ]
        )

    assert _row_count(provider) == 1
    assert repository.find_all() == [existing]


def test_operations_keep_working_after_rolled_back_transfer(repository: UserRepository) -> None:
    with pytest.raises(DuplicateKeyError):
        repository.transfer_data(
            [User(name="Twin", email="twin@example.com"), User(name="Twin", email="twin@example.com")]
        )

    created = _create(repository, "After Rollback")

    assert repository.find_all() == [created]


def test_batch_insert_users_delegates_to_batch_executor(repository: UserRepository) -> None:
    inserted = repository.batch_insert_users(
        [User(name="A", email="a@example.com"), User(name="B", email="b@example.com")]
    )

    assert inserted == 2
    assert len(repository.find_all()) == 2


def test_ensure_schema_is_idempotent(repository: UserRepository) -> None:
    repository.ensure_schema()
    repository.ensure_schema()

    assert [column.name for column in repository.get_table_columns("users")][:3] == ["id", "name", "email"]


class _CountingProvider:
    def __init__(self, provider: EngineConnectionProvider) -> None:
        self._provider = provider
        self.acquired = 0

    def acquire(self):
        self.acquired += 1
        return self._provider.acquire()


class _RowDeletedBeforeUpdate:
    """Wrap a connection so another session deletes the row right before the UPDATE runs."""

    def __init__(self, connection, provider: EngineConnectionProvider, user_id: int) -> None:
        self._connection = connection
        self._provider = provider
        self._user_id = user_id

    def execute(self, statement, *args):
        if statement is UPDATE_BY_ID:
            with connection_scope(self._provider) as other:
                other.execute(DELETE_BY_ID, {"user_id": self._user_id})
        return self._connection.execute(statement, *args)

    def close(self) -> None:
        self._connection.close()


class _ConcurrentDeleteProvider:
    def __init__(self, provider: EngineConnectionProvider, user_id: int) -> None:
        self._provider = provider
        self._user_id = user_id

    def acquire(self):
        return _RowDeletedBeforeUpdate(self._provider.acquire(), self._provider, self._user_id)


class _InsertResult:
    def __init__(self, rowcount: int, inserted_primary_key: tuple) -> None:
        self.rowcount = rowcount
        self.inserted_primary_key = inserted_primary_key


class _FixedInsertConnection:
    def __init__(self, result: _InsertResult) -> None:
        self.result = result
        self.closed = False

    def execute(self, statement, params):
        return self.result

    def close(self) -> None:
        self.closed = True


class _FixedInsertProvider:
    def __init__(self, result: _InsertResult) -> None:
        self.connection = _FixedInsertConnection(result)

    def acquire(self) -> _FixedInsertConnection:
        return self.connection


def test_update_user_uses_a_single_connection(provider: EngineConnectionProvider, clock) -> None:
    created = UserRepository(provider, clock=clock).create_user(CreateRequest(name="Solo", email="solo@example.com"))
    counting = _CountingProvider(provider)

    UserRepository(counting, clock=clock).update_user(created.id, UpdateRequest(role="lead"))

    assert counting.acquired == 1


def test_update_user_on_missing_id_uses_a_single_connection(provider: EngineConnectionProvider) -> None:
    counting = _CountingProvider(provider)

    with pytest.raises(NotFoundError):
        UserRepository(counting).update_user(404, UpdateRequest(name="Ghost"))

    assert counting.acquired == 1


def test_update_user_reports_row_deleted_between_read_and_write(
    repository: UserRepository, provider: EngineConnectionProvider, clock
) -> None:
    created = _create(repository, "Vanishing User")
    racing = UserRepository(_ConcurrentDeleteProvider(provider, created.id), clock=clock)

    with pytest.raises(PersistenceError, match="did not affect any row") as excinfo:
        racing.update_user(created.id, UpdateRequest(role="lead"))

    assert not isinstance(excinfo.value, NotFoundError)
    assert repository.find_user_by_id(created.id) is None


@pytest.mark.parametrize(
    "result, message",
    [
        (_InsertResult(0, (None,)), "did not affect any row"),
        (_InsertResult(1, (None,)), "no id was generated"),
        (_InsertResult(1, ()), "no id was generated"),
    ],
)
def test_create_user_rejects_incomplete_insert(result: _InsertResult, message: str) -> None:
    provider = _FixedInsertProvider(result)

    with pytest.raises(PersistenceError, match=message) as excinfo:
        UserRepository(provider).create_user(CreateRequest(name="Nobody", email="nobody@example.com"))

    assert not isinstance(excinfo.value, NotFoundError)
    assert provider.connection.closed is True


def test_batch_insert_users_stamps_rows_with_repository_clock(repository: UserRepository, clock) -> None:
    expected = clock.current

    repository.batch_insert_users([User(name="Clocked", email="clocked@example.com")])

    (stored,) = repository.find_all()
    assert stored.created_at == expected
    assert stored.updated_at == expected
