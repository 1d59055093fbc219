"""Helpers for building SQLAlchemy engines from :class:`DatabaseSettings`."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import QueuePool

from .config import DatabaseRuntimeConfig, DatabaseSettings

__all__ = ["create_engine_from_config"]


def _build_connect_args(backend: str, runtime: DatabaseRuntimeConfig) -> dict[str, object]:
    """Return connection keyword arguments understood by the backend driver."""

    if backend == "sqlite":
        # sqlite3 only knows the lock wait timeout.
        return {"timeout": float(runtime.connect_timeout_seconds)}
    if backend == "postgresql":
        return {
            "connect_timeout": int(runtime.connect_timeout_seconds),
            "application_name": runtime.application_name,
        }
    if backend in {"mysql", "mariadb"}:
        return {"connect_timeout": int(runtime.connect_timeout_seconds)}
    return {}


def create_engine_from_config(settings: DatabaseSettings) -> Engine:
    """Instantiate a SQLAlchemy engine for the configured DSN.

    Server databases get a :class:`QueuePool` tuned by ``settings.pool``.
    SQLite keeps the pool SQLAlchemy selects for the URL, because in-memory
    databases must stay on a single connection.
    """

    url = make_url(settings.dsn)
    backend = url.get_backend_name()
    connect_args = _build_connect_args(backend, settings.runtime)

    if settings.is_sqlite:
        return create_engine(
            url,
            echo=settings.echo_statements,
            connect_args=connect_args,
        )

    pool = settings.pool
    return create_engine(
        url,
        echo=settings.echo_statements,
        poolclass=QueuePool,
        pool_size=int(pool.size),
        max_overflow=int(pool.max_overflow),
        pool_timeout=None if pool.timeout is None else float(pool.timeout),
        pool_recycle=float(pool.recycle),
        pool_use_lifo=bool(pool.use_lifo),
        pool_pre_ping=True,
        connect_args=connect_args,
    )
