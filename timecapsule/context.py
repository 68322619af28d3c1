"""
Caller identity and logical time.

Every registry operation receives a CallContext built by the transport
adapter, so the registry never reads the environment on its own.
"""
import threading
import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CallContext:
    identity: Optional[str]
    now: int


class SystemClock:
    """Wall-clock seconds that never go backwards."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, int(time.time()))
            return self._last


class ManualClock:
    """Clock driven by hand, for tests and replays."""

    def __init__(self, start: int = 0):
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int):
        if timestamp < self._now:
            raise ValueError(f"Clock cannot move backwards ({timestamp} < {self._now})")
        self._now = timestamp

    def advance(self, seconds: int):
        self.set(self._now + seconds)
