# Overview: Transaction boundaries, row locking and retry for every stock-affecting operation.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StorageFailure


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work():
    """
    One atomic unit: commit on success, roll back on any exception.

    Domain errors propagate unchanged; storage errors surface as
    StorageFailure so callers see a retryable failure, never a partial write.
    """
    try:
        yield db.session
        db.session.commit()
    except (OperationalError, StaleDataError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageFailure(str(exc.__class__.__name__)) from exc
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError.
    After the last attempt the failure is reported as StorageFailure.
    """
    if attempts is None:
        attempts = current_app.config.get("STORAGE_RETRY_ATTEMPTS", 3)
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageFailure(str(exc.__class__.__name__)) from exc
            current_app.logger.warning(
                "Retrying after transient storage error (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
