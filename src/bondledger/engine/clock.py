"""Wall-clock sources in whole seconds."""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        ...


class SystemClock:
    """Unix time, truncated to seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock advanced explicitly by simulations and tests."""

    def __init__(self, start: int = 0):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards by {seconds}s")
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> int:
        if timestamp < self._now:
            raise ValueError(f"Cannot move clock backwards from {self._now} to {timestamp}")
        self._now = int(timestamp)
        return self._now
