"""Connection-attempt counter shared by the raw-socket behaviors."""

from __future__ import annotations

import threading


class ConnectionCounter:
    """Monotonically increasing counter with an atomic increment.

    One instance belongs to one engine, so several engines can run side by
    side (e.g. in tests) without sharing parity.

    Example:
        >>> counter = ConnectionCounter()
        >>> counter.increment()
        1
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must be non-negative")
        self._value = start
        self._lock = threading.Lock()

    def increment(self) -> int:
        """Increment the counter and return the post-increment value."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        """Current counter value."""
        return self._value
