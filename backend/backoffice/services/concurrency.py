# Overview: Transaction helpers shared by services: row locks, version bumps and retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import BackofficeError
from ..time_utils import utcnow


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id column on the locked row still catches lost updates there.
    """
    return query.with_for_update()


def touch(entity) -> None:
    """
    Dirty a versioned row so its version_id is checked and bumped on flush.

    Used to serialize child mutations (order lines, payments) against
    status changes of the parent.
    """
    entity.updated_at = utcnow()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business-rule errors roll back the
    session and propagate immediately; they are never retried.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except BackofficeError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent update detected, retrying (attempt %s/%s): %s",
                attempt + 1, attempts, exc,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
