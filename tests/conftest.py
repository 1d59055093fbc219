from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from userstore.config import DatabaseSettings
from userstore.connection import EngineConnectionProvider, create_provider
from userstore.models import ensure_schema
from userstore.repository import UserRepository
from userstore.retry import RetryPolicy


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value


@pytest.fixture()
def sqlite_dsn(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'users.db'}"


@pytest.fixture()
def provider(sqlite_dsn: str) -> Iterator[EngineConnectionProvider]:
    settings = DatabaseSettings(
        dsn=sqlite_dsn,
        retry=RetryPolicy(attempts=1),
    )
    provider = create_provider(settings)
    ensure_schema(provider.engine)
    try:
        yield provider
    finally:
        provider.close()


@pytest.fixture()
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture()
def repository(provider: EngineConnectionProvider, clock: TickingClock) -> UserRepository:
    return UserRepository(provider, clock=clock)
