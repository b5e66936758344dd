# Overview: Transaction and retry helpers for read-check-write sequences.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Run the enclosed session work as one unit: commit on success, roll back
    on any exception and re-raise it.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default. Versioned writes also pass
    IntegrityError so a lost race on the "one current row" index re-reads
    and tries again.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def retry_versioned_write(func, *, attempts: int = 3):
    """run_with_retry for writes guarded by a unique "current row" index."""
    return run_with_retry(func, attempts=attempts, retry_on=RETRYABLE_ERRORS + (IntegrityError,))
