# Overview: Concurrency primitives for reconciliation; locking, units of work and commit retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Hashable

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
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
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_with_retry(session, *, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        session.commit()
    return run_with_retry(session, _op, attempts=attempts, backoff_base=backoff_base)


class KeyedLocks:
    """
    Registry of one lock per key, e.g. ("product", "p1").

    Writers to the same entity id are serialized; different ids proceed in
    parallel. Entries are reference-counted and dropped once nobody holds or
    waits on them, so the registry only grows with concurrent work.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders + waiters]
        self._locks: dict[Hashable, list] = {}

    def acquire(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        entry[0].acquire()

    def release(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[0].release()
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def holding(self, key: Hashable):
        self.acquire(key)
        try:
            yield
        finally:
            self.release(key)

    def locked(self, key: Hashable) -> bool:
        with self._guard:
            entry = self._locks.get(key)
            return entry is not None and entry[0].locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class UnitOfWork:
    """
    All-or-nothing transaction scope over a SQLAlchemy session.

    - begin() commits on normal exit and rolls back on any exception.
    - Nested begin() calls join the outermost scope; only it commits.
    - Locks taken with hold() stay held until that commit/rollback, so a
      read-modify-write on one entity id cannot interleave with another.
    """

    def __init__(self, session, locks: KeyedLocks | None = None):
        self.session = session
        self.locks = locks if locks is not None else KeyedLocks()
        self._local = threading.local()

    @property
    def active(self) -> bool:
        return getattr(self._local, "held", None) is not None

    @contextmanager
    def begin(self):
        if self.active:
            yield self.session
            return

        self._local.held = []
        try:
            yield self.session
            self.session.commit()
        except BaseException:
            self.session.rollback()
            raise
        finally:
            held = self._local.held
            self._local.held = None
            for key in reversed(held):
                self.locks.release(key)

    def hold(self, key: Hashable) -> None:
        """Acquire the lock for key until the current scope ends."""
        held = getattr(self._local, "held", None)
        if held is None:
            raise RuntimeError("hold() requires an active unit of work")
        if key in held:
            return
        self.locks.acquire(key)
        held.append(key)
