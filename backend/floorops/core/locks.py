"""Per-key lock registry used by the in-memory stores."""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class KeyedLocks:
    """Hands out one lock per key, created on first use.

    The registry itself is guarded by a plain lock so two threads asking for
    the same key always receive the same lock object.
    """

    def __init__(self, reentrant: bool = False):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, object] = {}
        self._factory = threading.RLock if reentrant else threading.Lock

    def get(self, key: Hashable):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._factory()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable):
        lock = self.get(key)
        with lock:
            yield

    def discard(self, key: Hashable) -> None:
        """Forget the lock for a deleted entity."""
        with self._guard:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
