# Overview: Retry and failure mapping for database round trips.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, DependencyUnavailableError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; writers there rely on the
    compare-and-set UPDATE that follows the read.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient failures.

    Retries on OperationalError (locks, dropped connections) and
    StaleDataError (optimistic locking conflicts). When the last attempt
    still fails with OperationalError the store is treated as unreachable
    and DependencyUnavailableError is raised; a row that kept changing under
    a compare-and-set write surfaces as ConflictError. Every failed attempt
    is rolled back.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, OperationalError):
                    raise DependencyUnavailableError("Database unavailable, try again later") from exc
                raise ConflictError("Record was modified concurrently, try again") from exc
            time.sleep(backoff_base * (2 ** attempt))


def commit_or_conflict(conflict_message: str = "Duplicate record") -> None:
    """
    Commit current session.

    A unique-key violation is rolled back and surfaced as ConflictError.
    Call this inside the function handed to run_with_retry so a transient
    failure replays the whole unit of work, not just the commit.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(conflict_message) from exc
