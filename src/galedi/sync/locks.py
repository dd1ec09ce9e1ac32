"""
Per-key single-flight locks.

Ingestion and export for one partner may overlap, two exports (or two
ingestions) for the same partner may not: they share a staging file.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLocks:
    """Lazily created non-reentrant locks, one per key."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def single_flight(self, key: Hashable) -> Iterator[bool]:
        """
        Try to take the lock for ``key`` without waiting.

        Yields True when the caller owns the key for the block, False when
        another run holds it (the caller should skip its work).
        """
        lock = self._lock_for(key)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    def is_busy(self, key: Hashable) -> bool:
        with self._guard:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()
