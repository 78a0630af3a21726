# Overview: Unit-of-work runner; encapsulates locking, commit/rollback and conflict retry.
"""
Unit of work semantics (authoritative)

- Every Sale, Cancellation, stock adjustment, top-up and fiscal close runs
  inside exactly one unit of work: all of its writes commit together or the
  session is rolled back and nothing is visible.
- SQLite: the unit starts with BEGIN IMMEDIATE, which takes the database
  write lock up front, so check-then-write sequences are serialized.
- Other databases: rows are read with SELECT ... FOR UPDATE and the wait
  for a lock is bounded by LOCK_TIMEOUT_SECONDS.
- Lock timeouts, deadlocks, serialization failures, optimistic version
  conflicts and unique-key insert races are retried from scratch; when the
  budget is spent the caller gets ConcurrencyConflict. Any other database
  error, including other integrity violations, is PersistenceFailure.
- Events queued with publish_after_commit() reach the notification hub
  only after the commit succeeded, and are dropped on rollback.
"""
from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db, notifications
from .errors import ConcurrencyConflict, PersistenceFailure

_AFTER_COMMIT_KEY = "clubledger.after_commit"

_CONFLICT_MARKERS = (
    "database is locked",
    "database table is locked",
    "busy",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "lock_timeout",
    "could not obtain lock",
)

# Unique-key violations are lost insert races, e.g. two first allocations
# of one document sequence prefix.
_UNIQUE_MARKERS = (
    "unique constraint failed",
    "duplicate key value",
    "unique violation",
)
_PG_UNIQUE_VIOLATION = "23505"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there BEGIN IMMEDIATE holds
    the write lock for the whole unit. populate_existing() makes sure the
    locked read replaces any stale copy in the identity map.
    """
    return query.with_for_update().populate_existing()


def _is_unique_violation(exc: IntegrityError) -> bool:
    if getattr(exc.orig, "pgcode", None) == _PG_UNIQUE_VIOLATION:
        return True
    message = str(exc.orig).lower()
    return any(marker in message for marker in _UNIQUE_MARKERS)


def _is_conflict(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, IntegrityError):
        return _is_unique_violation(exc)
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


def _begin(session) -> None:
    connection = session.connection()
    dialect = connection.dialect.name
    if dialect == "sqlite":
        raw = connection.connection.dbapi_connection
        if not raw.in_transaction:
            connection.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config.get("LOCK_TIMEOUT_SECONDS", 5) * 1000)
        connection.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
    # Rows loaded before the unit started may be stale
    session.expire_all()


def publish_after_commit(event_type: str, payload: dict) -> None:
    """Queue a notification to be published once the current unit commits."""
    db.session.info.setdefault(_AFTER_COMMIT_KEY, []).append((event_type, payload))


@contextmanager
def unit_of_work():
    """Atomic block: commit on success, rollback on any exception."""
    session = db.session
    try:
        _begin(session)
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        session.info.pop(_AFTER_COMMIT_KEY, None)
        raise

    for event_type, payload in session.info.pop(_AFTER_COMMIT_KEY, []):
        notifications.publish(event_type, payload)


def run_in_unit_of_work(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute func() inside a unit of work, retrying on concurrency conflicts.

    Business errors raised by func propagate unchanged after rollback.
    """
    if attempts is None:
        attempts = int(current_app.config.get("UNIT_OF_WORK_ATTEMPTS", 3))

    for attempt in range(attempts):
        try:
            with unit_of_work():
                result = func()
            return result
        except (OperationalError, StaleDataError, IntegrityError) as exc:
            if not _is_conflict(exc):
                raise PersistenceFailure("The ledger store is unavailable") from exc
            current_app.logger.warning(
                "Unit of work conflict (attempt %s/%s): %s", attempt + 1, attempts, exc.__class__.__name__
            )
            if attempt >= attempts - 1:
                raise ConcurrencyConflict() from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            raise PersistenceFailure("The ledger store is unavailable") from exc
