"""
Reactor clocks.

Both clocks report integer ticks (nanoseconds) and expose one blocking
primitive, ``wait(event, timeout)``, which returns True when the event woke
the caller and False when the timeout elapsed.
"""

import threading
import time
from typing import Optional

from ..interfaces.service import TICKS_PER_SECOND, seconds_to_ticks


class MonotonicClock:
    """Wall-independent real clock backed by ``time.monotonic_ns``."""

    def now(self) -> int:
        return time.monotonic_ns()

    def wait(self, event: threading.Event, timeout: Optional[int]) -> bool:
        if timeout is None:
            return event.wait()
        return event.wait(max(timeout, 0) / TICKS_PER_SECOND)


class SimulatedClock:
    """
    Virtual clock for tests and dry runs.

    Waiting advances virtual time by the full timeout instantly, unless the
    event is already set. Services can call ``advance()`` to model work that
    takes time.
    """

    def __init__(self, start: float = 0.0):
        self._now = seconds_to_ticks(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: float):
        with self._lock:
            self._now += seconds_to_ticks(seconds)

    def wait(self, event: threading.Event, timeout: Optional[int]) -> bool:
        if event.is_set():
            return True
        if timeout is None:
            # Nothing scheduled; only another thread can make progress
            return event.wait()
        with self._lock:
            self._now += max(timeout, 0)
        return event.is_set()
