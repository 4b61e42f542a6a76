import threading
from contextlib import contextmanager


class KeyedLock:
    """
    One mutex per key, created on demand and dropped once no thread holds or waits on it.
    Threads working on different keys never contend beyond the short registry guard.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key, blocking=True):
        """
        Yields True once the lock for `key` is held.
        With blocking=False yields False immediately if another thread holds it.
        """
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        acquired = entry[0].acquire(blocking)
        try:
            yield acquired
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]
