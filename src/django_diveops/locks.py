"""Per-key mutual exclusion for in-process serialization.

Telemetry for one dive must be evaluated one sample at a time: both the
ascent-rate check and alert deduplication read "the previous state" of the
dive. Different dives never contend with each other.

Usage:
    with dive_locks.hold(dive_id):
        ...  # append sample, evaluate rules, insert alerts
"""

import threading
from contextlib import contextmanager


class KeyedLock:
    """A lock per key, created on first use and dropped when idle."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, key):
        key = str(key)
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = [threading.Lock(), 0]
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def is_held(self, key) -> bool:
        """Check if any caller currently holds or waits for the key."""
        with self._guard:
            return str(key) in self._entries

    def __len__(self):
        with self._guard:
            return len(self._entries)


dive_locks = KeyedLock()
