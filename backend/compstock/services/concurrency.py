# Overview: Service-layer operations for concurrency; row locks, retries and per-component mutexes.

from __future__ import annotations

import threading
import time
import weakref
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0

_registry_guard = threading.Lock()
# Entries vanish once no caller holds or waits on the lock
_component_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _lock_for(component_id: int) -> threading.Lock:
    with _registry_guard:
        lock = _component_locks.get(component_id)
        if lock is None:
            lock = threading.Lock()
            _component_locks[component_id] = lock
        return lock


@contextmanager
def component_lock(component_id: int, *, timeout: float | None = None):
    """
    Serialize ledger writes for one component within this process.

    Different components never contend. Raises ConflictError when the lock
    cannot be acquired within timeout seconds.
    """
    if timeout is None:
        timeout = current_app.config.get("COMPONENT_LOCK_TIMEOUT_SECONDS", DEFAULT_LOCK_TIMEOUT_SECONDS)

    lock = _lock_for(component_id)
    if not lock.acquire(timeout=timeout):
        raise ConflictError(f"Component {component_id} is busy, try again")
    try:
        yield
    finally:
        lock.release()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc

