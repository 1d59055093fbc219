"""Transactional record access for the ``users`` table."""

from .batch import batch_insert_users, count_batch_successes
from .config import DatabasePoolConfig, DatabaseRuntimeConfig, DatabaseSettings
from .connection import (
    ConnectionProvider,
    EngineConnectionProvider,
    connection_scope,
    create_provider,
)
from .engine import create_engine_from_config
from .exceptions import (
    ConnectivityError,
    DuplicateKeyError,
    MappingError,
    NotFoundError,
    PersistenceError,
    RetryableDatabaseError,
    TransactionRollbackError,
    UserStoreError,
)
from .introspection import DatabaseInfo, get_database_info, get_table_columns
from .mapper import row_to_user, user_to_params
from .models import ensure_schema, metadata, users
from .query_builder import SearchQuery, build_search_query
from .records import ColumnDescriptor, CreateRequest, QueryFilter, UpdateRequest, User
from .repository import UserRepository
from .retry import RetryPolicy
from .transaction import TransactionScope, TransactionState, run_in_transaction

__all__ = [
    "ColumnDescriptor",
    "ConnectionProvider",
    "ConnectivityError",
    "CreateRequest",
    "DatabaseInfo",
    "DatabasePoolConfig",
    "DatabaseRuntimeConfig",
    "DatabaseSettings",
    "DuplicateKeyError",
    "EngineConnectionProvider",
    "MappingError",
    "NotFoundError",
    "PersistenceError",
    "QueryFilter",
    "RetryPolicy",
    "RetryableDatabaseError",
    "SearchQuery",
    "TransactionRollbackError",
    "TransactionScope",
    "TransactionState",
    "UpdateRequest",
    "User",
    "UserRepository",
    "UserStoreError",
    "batch_insert_users",
    "build_search_query",
    "connection_scope",
    "count_batch_successes",
    "create_engine_from_config",
    "create_provider",
    "ensure_schema",
    "get_database_info",
    "get_table_columns",
    "metadata",
    "row_to_user",
    "run_in_transaction",
    "user_to_params",
    "users",
]
