"""Unit tests for ConnectionCounter."""

from __future__ import annotations

import threading

import pytest

from netsimulate.server import ConnectionCounter


class TestConnectionCounter:
    """Tests for the connection-attempt counter."""

    def test_starts_at_zero(self) -> None:
        """A fresh counter reads zero."""
        assert ConnectionCounter().value == 0

    def test_increment_returns_new_value(self) -> None:
        """increment() returns the post-increment value."""
        counter = ConnectionCounter()
        assert [counter.increment() for _ in range(3)] == [1, 2, 3]
        assert counter.value == 3

    def test_custom_start(self) -> None:
        """Counting can resume from a given value."""
        counter = ConnectionCounter(start=10)
        assert counter.increment() == 11

    def test_negative_start_rejected(self) -> None:
        """Negative start values are rejected."""
        with pytest.raises(ValueError):
            ConnectionCounter(start=-1)

    def test_concurrent_increments_are_unique(self) -> None:
        """Increments from many threads never hand out the same value."""
        counter = ConnectionCounter()
        seen: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(500):
                value = counter.increment()
                with lock:
                    seen.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert counter.value == 4000
        assert sorted(seen) == list(range(1, 4001))

    def test_engines_do_not_share_counters(self) -> None:
        """Two counters count independently."""
        first, second = ConnectionCounter(), ConnectionCounter()
        first.increment()
        first.increment()
        assert second.increment() == 1
