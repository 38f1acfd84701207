# Overview: Retry helpers for optimistic-concurrency work against the stores.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _rollback_session(exc, attempt):
    db.session.rollback()


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple = (OperationalError, StaleDataError),
    on_retry=None,
):
    """
    Execute an operation with retry on concurrency-related failures.

    Retries on the exception types in retry_on (by default OperationalError for
    deadlocks/locks and StaleDataError for optimistic locking conflicts), with
    exponential backoff. on_retry(exc, attempt) runs before each retry and
    defaults to rolling back the database session.
    """
    if on_retry is None:
        on_retry = _rollback_session
    attempts = max(1, int(attempts))
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts - 1:
                raise
            on_retry(exc, attempt)
            time.sleep(backoff_base * (2 ** attempt))

