"""Tests for per-key in-process locking."""

import threading
import time

from django_diveops.locks import KeyedLock


class TestKeyedLock:
    """Tests for KeyedLock."""

    def test_entry_dropped_when_released(self):
        locks = KeyedLock()

        with locks.hold("dive-1"):
            assert locks.is_held("dive-1")
            assert len(locks) == 1

        assert not locks.is_held("dive-1")
        assert len(locks) == 0

    def test_keys_are_normalized(self):
        locks = KeyedLock()

        with locks.hold(42):
            assert locks.is_held("42")

    def test_same_key_is_serialized(self):
        locks = KeyedLock()
        events = []

        def worker(name):
            with locks.hold("dive-1"):
                events.append(f"{name}-in")
                time.sleep(0.05)
                events.append(f"{name}-out")

        threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b", "c")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Every "in" is directly followed by its own "out"
        assert len(events) == 6
        for i in range(0, 6, 2):
            assert events[i].split("-")[0] == events[i + 1].split("-")[0]
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def worker():
            with locks.hold("dive-2"):
                entered.set()

        with locks.hold("dive-1"):
            thread = threading.Thread(target=worker)
            thread.start()
            assert entered.wait(timeout=2)
            thread.join()

    def test_released_on_error(self):
        locks = KeyedLock()

        try:
            with locks.hold("dive-1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert len(locks) == 0
