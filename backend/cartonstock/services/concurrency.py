# Overview: Row locking and bounded retry for stock, sale and order writes.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _retry_settings() -> tuple[int, float]:
    if has_app_context():
        cfg = current_app.config
        return (
            int(cfg.get("CONCURRENCY_RETRY_ATTEMPTS", 3)),
            float(cfg.get("CONCURRENCY_BACKOFF_SECONDS", 0.1)),
        )
    return 3, 0.1


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work, retrying on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back after every
    failure; any other exception propagates after the rollback. When the
    attempts are exhausted a ConcurrencyConflict is raised.
    """
    default_attempts, default_backoff = _retry_settings()
    attempts = max(1, attempts if attempts is not None else default_attempts)
    backoff_base = default_backoff if backoff_base is None else backoff_base

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    logger.warning("Concurrency retries exhausted after %d attempts: %s", attempts, last_exc)
    raise ConcurrencyConflict(
        "The record was changed by another request; please retry",
        details={"attempts": attempts},
    ) from last_exc
