"""Retrying connection acquisition.

Only opening a connection is retried.  A statement that failed may already
have been applied, so statements are never replayed; their errors surface to
the caller straight away.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random,
    wait_random_exponential,
)

from .exceptions import RetryableDatabaseError

__all__ = ["AcquisitionRetry", "RetryPolicy", "is_transient_connect_failure"]

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """How many times, and how patiently, a provider tries to open a connection."""

    attempts: PositiveInt = Field(3, description="Connection attempts before the last failure is raised.")
    initial_backoff: PositiveFloat = Field(0.05, description="Backoff multiplier in seconds.")
    max_backoff: PositiveFloat = Field(2.0, description="Ceiling of a single backoff interval.")
    max_jitter: float = Field(0.1, ge=0.0, description="Extra random delay added to every backoff.")


def is_transient_connect_failure(error: BaseException) -> bool:
    """Return ``True`` when another connect attempt may succeed.

    Server unreachable, handshake timeouts and pool invalidation qualify.
    Authentication, unknown database and other configuration errors are
    raised by the driver as ``OperationalError`` too, so those are retried
    until the attempts run out.
    """

    if isinstance(error, (RetryableDatabaseError, DisconnectionError, TimeoutError, ConnectionError)):
        return True
    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


class AcquisitionRetry:
    """Callable retry loop applied to a provider's connect function.

    Built once per provider; each call starts a fresh attempt sequence.
    """

    def __init__(self, policy: RetryPolicy, *, logger: logging.Logger, backend: str) -> None:
        wait = wait_random_exponential(multiplier=policy.initial_backoff, max=policy.max_backoff)
        if policy.max_jitter > 0:
            wait = wait + wait_random(0, policy.max_jitter)
        self._logger = logger
        self._backend = backend
        self._retrying = Retrying(
            stop=stop_after_attempt(int(policy.attempts)),
            wait=wait,
            retry=retry_if_exception(is_transient_connect_failure),
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self._logger.warning(
            "Connection attempt failed; retrying",
            extra={
                "backend": self._backend,
                "attempt": retry_state.attempt_number,
                "sleep_seconds": round(sleep, 3),
                "error": repr(error),
            },
        )

    def __call__(self, connect: Callable[[], T]) -> T:
        return self._retrying(connect)
