"""Batch insertion of user records in a single round trip."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone

from .connection import ConnectionProvider
from .exceptions import PersistenceError
from .mapper import user_to_params
from .records import User
from .statements import INSERT_USER
from .transaction import TransactionScope

__all__ = [
    "EXECUTE_FAILED",
    "SUCCESS_NO_INFO",
    "batch_insert_users",
    "count_batch_successes",
]

# Per-row outcome codes used by drivers that report batch results row by row.
SUCCESS_NO_INFO = -2
EXECUTE_FAILED = -3

logger = logging.getLogger(__name__)


def count_batch_successes(outcomes: Iterable[int]) -> int:
    """Sum per-row batch outcomes.

    A positive value is the amount of rows the statement affected,
    :data:`SUCCESS_NO_INFO` is a success whose count is unknown and counts as
    one, and :data:`EXECUTE_FAILED` (or any other negative code) counts as
    zero.
    """

    total = 0
    for outcome in outcomes:
        if outcome > 0:
            total += outcome
        elif outcome == SUCCESS_NO_INFO:
            total += 1
    return total


def _batch_parameters(users: Sequence[User], now: datetime) -> list[dict[str, object]]:
    rows = []
    for user in users:
        params = user_to_params(user)
        if params["created_at"] is None:
            params["created_at"] = now
        params["updated_at"] = now
        rows.append(params)
    return rows


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def batch_insert_users(
    provider: ConnectionProvider,
    users: Sequence[User],
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> int:
    """Insert *users* as one batch and return the amount reported as inserted.

    The batch runs in a manual-commit scope and is committed once.  Any
    statement failure rolls back every row of the batch and raises
    :class:`~userstore.exceptions.PersistenceError`.  A missing ``created_at``
    and every ``updated_at`` take a single reading of *clock*.
    """

    if not users:
        return 0

    rows = _batch_parameters(users, clock())
    try:
        with TransactionScope(provider) as connection:
            result = connection.execute(INSERT_USER, rows)
            # -1 means the driver cannot count; no error means every row went in.
            if result.rowcount is None or result.rowcount < 0:
                inserted = count_batch_successes([SUCCESS_NO_INFO] * len(rows))
            else:
                inserted = result.rowcount
    except PersistenceError:
        logger.error("Batch insert rolled back", extra={"batch_size": len(rows)})
        raise

    logger.info("Batch insert committed", extra={"batch_size": len(rows), "inserted": inserted})
    return inserted
