from __future__ import annotations

import threading
from contextlib import contextmanager


class KeyedLock:
    """Per-key mutexes created on demand and dropped when nobody holds them.

    ``hold`` takes several keys at once in sorted order, so two callers that
    need overlapping keys can never deadlock on each other.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [RLock, users]

    def _acquire(self, key: str):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        entry[0].acquire()

    def _release(self, key: str):
        with self._guard:
            entry = self._locks[key]
            entry[0].release()
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str):
        ordered = sorted(set(k for k in keys if k))
        taken = []
        try:
            for key in ordered:
                self._acquire(key)
                taken.append(key)
            yield
        finally:
            for key in reversed(taken):
                self._release(key)

    def __len__(self):
        with self._guard:
            return len(self._locks)


def book_key(book_id) -> str:
    return f"book:{book_id}"


def member_key(user_id) -> str:
    return f"member:{user_id}"


# One registry per process; rows are additionally locked in the database.
circulation_locks = KeyedLock()
