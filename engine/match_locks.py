"""Per-match serialization around the read -> mutate -> persist cycle."""

import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class _MatchLock:
    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0  # holders plus waiters


class MatchLockRegistry:
    """One lock per match id. Different matches never wait on each other.

    An entry lives only while some request holds or waits on it, so abandoned
    matches leave nothing behind.
    """

    def __init__(self):
        self._locks = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def hold(self, match_id):
        with self._registry_lock:
            entry = self._locks.get(match_id)
            if entry is None:
                entry = _MatchLock()
                self._locks[match_id] = entry
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[match_id]

    def is_tracked(self, match_id):
        with self._registry_lock:
            return match_id in self._locks

    def __len__(self):
        with self._registry_lock:
            return len(self._locks)
