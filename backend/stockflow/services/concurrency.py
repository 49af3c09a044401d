# Overview: Retry and row-locking helpers for tenant and snapshot writes.

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures worth another attempt: database locks/deadlocks, and a concurrent
# writer bumping LedgerSnapshot.version_id under us.
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the snapshot row.

    NOTE: SQLite ignores FOR UPDATE; the per-ledger write lock and the
    version counter cover it there.
    """
    return query.with_for_update()


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    label: str = "DB operation",
) -> T:
    """
    Run ``func`` until it succeeds or ``attempts`` are used up.

    The session is rolled back between attempts so ``func`` always starts
    from a clean transaction. The last error is re-raised.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                logger.error("%s failed after %d attempt(s): %s", label, attempts, exc.__class__.__name__)
                raise
            logger.warning("Retrying %s attempt=%d error=%s", label, attempt, exc.__class__.__name__)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
    raise AssertionError("unreachable")
