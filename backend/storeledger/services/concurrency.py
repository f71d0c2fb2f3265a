# Overview: Row locking and retry helpers shared by every ledger-mutating service.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking (SELECT ... FOR UPDATE) to a query or select().

    NOTE: SQLite ignores FOR UPDATE; its database-level write lock already
    serializes writers. PostgreSQL/MySQL block concurrent lockers of the row.
    """
    return query.with_for_update()


def _retry_policy() -> tuple[int, float]:
    if has_app_context():
        return (
            int(current_app.config.get("DB_RETRY_ATTEMPTS", 3)),
            float(current_app.config.get("DB_RETRY_BACKOFF", 0.1)),
        )
    return 3, 0.1


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (version_id conflicts). The session is rolled back between attempts, so
    func must redo all of its reads.
    """
    default_attempts, default_backoff = _retry_policy()
    attempts = attempts or default_attempts
    backoff_base = default_backoff if backoff_base is None else backoff_base

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying after concurrency failure (attempt %s/%s): %s",
                attempt + 1,
                attempts,
                exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
