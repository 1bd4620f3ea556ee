# Overview: Service-layer concurrency helpers: per-product serialization, row locks and retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
"""
Stock Serialization Invariants (authoritative)

- Every check-then-append on a product runs while holding that product's guard,
  so two deductions can never both validate against the same pre-write stock.
- Guards for several products are always taken in ascending product id order.
- Within the guard the product row is also locked with SELECT ... FOR UPDATE,
  which serializes across processes on databases that honour it.
- Product.version_id turns concurrent counter writes into StaleDataError,
  which run_with_retry rolls back and retries.
"""


class SequenceConflictError(Exception):
    """A sequence row was created concurrently; the unit of work must be retried."""


RETRYABLE_ERRORS = (OperationalError, StaleDataError, SequenceConflictError)

_registry_lock = threading.Lock()
_product_locks: dict[int, threading.RLock] = {}


def _lock_for(product_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _product_locks.get(product_id)
        if lock is None:
            lock = threading.RLock()
            _product_locks[product_id] = lock
        return lock


@contextmanager
def product_guard(*product_ids: int):
    """
    Serialize stock work per product inside this process.

    Re-entrant, so a service holding a guard may call another guarded service
    for the same product.
    """
    ids = sorted({int(pid) for pid in product_ids if pid is not None})
    acquired = []
    try:
        for pid in ids:
            lock = _lock_for(pid)
            lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and SequenceConflictError.
    Business errors propagate immediately and are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying stock operation after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
