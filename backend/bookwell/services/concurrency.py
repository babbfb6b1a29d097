# Overview: Service-layer helpers for concurrency; row locks, keyed critical sections and retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Hashable, Iterable, Iterator

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


_registry_lock = threading.Lock()
_keyed_locks: dict[Hashable, _KeyedLock] = {}


@dataclass
class _KeyedLock:
    """A lock plus the number of callers holding or waiting on it."""
    lock: threading.RLock = field(default_factory=threading.RLock)
    holders: int = 0


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _checkout(key: Hashable) -> threading.RLock:
    with _registry_lock:
        entry = _keyed_locks.get(key)
        if entry is None:
            entry = _keyed_locks[key] = _KeyedLock()
        entry.holders += 1
        return entry.lock


def _checkin(key: Hashable) -> None:
    with _registry_lock:
        entry = _keyed_locks[key]
        entry.holders -= 1
        # Waiters count as holders, so nobody can still need this lock
        if entry.holders == 0:
            del _keyed_locks[key]


@contextmanager
def critical_section(keys: Iterable[Hashable]) -> Iterator[None]:
    """
    Serialize work on the given keys within this process.

    Keys are acquired in sorted order so two callers locking overlapping key
    sets cannot deadlock. Pairs with lock_for_update for cross-process
    databases; SQLite only gets the in-process guarantee.

    A key's lock exists only while someone holds or waits on it; the
    registry is empty whenever no critical section is active.

    Usage:
        with critical_section([("staff", 3), ("staff", 7)]):
            ...check availability, write, commit...
    """
    ordered = sorted(set(keys), key=repr)
    held: list[tuple[Hashable, threading.RLock]] = []
    try:
        for key in ordered:
            lock = _checkout(key)
            try:
                lock.acquire()
            except BaseException:
                _checkin(key)
                raise
            held.append((key, lock))
        yield
    finally:
        for key, lock in reversed(held):
            lock.release()
            _checkin(key)


def staff_keys(staff_ids: Iterable[int]) -> list[tuple[str, int]]:
    return [("staff", int(sid)) for sid in staff_ids]


def appointment_key(appointment_id: int) -> tuple[str, int]:
    return ("appointment", int(appointment_id))


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on: tuple = RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default. func must re-read and
    re-validate its state on every attempt.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
