"""
Time sources.

Every component reads "now" through a Clock so cycles can be replayed
deterministically. Units are seconds unless a caller chooses otherwise;
only consistency matters.
"""

import threading
import time


class Clock:
    """Abstract clock"""

    def now(self) -> float:
        """Current timestamp."""
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in epoch seconds"""

    def now(self) -> float:
        return time.time()


class ManualClock(Clock):
    """Clock advanced explicitly by the caller (tests, replays)"""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: float):
        with self._lock:
            if timestamp < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = float(timestamp)
