# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import LedgerUnavailable


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    func must do all of its writes and its commit itself; it is re-run from
    scratch after a rollback, so nothing from a failed attempt survives.

    - OperationalError (deadlocks, lock timeouts, "database is locked") and
      StaleDataError are retried with exponential backoff. When attempts run
      out the failure is raised as LedgerUnavailable.
    - Any other exception (including typed business errors) rolls the
      session back and propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error(
                    "Unit of work failed after %d attempts: %s", attempts, exc
                )
                raise LedgerUnavailable(
                    "Storage temporarily unavailable; no changes were made",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.warning(
                "Retrying unit of work (attempt %d/%d) after %s",
                attempt + 1, attempts, type(exc).__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
