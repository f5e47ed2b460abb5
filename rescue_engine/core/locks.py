"""Per-key locking used to serialize mutations of a single rescue."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLock:
    """One re-entrant lock per key, created on demand and dropped when idle.

    Operations on different keys never wait on each other; the internal guard
    only protects the lock table and is never held while a key lock is.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, number of holders/waiters]
        self._locks: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
        lock: threading.RLock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Singleton used by every service that mutates a rescue
rescue_locks = KeyedLock()
