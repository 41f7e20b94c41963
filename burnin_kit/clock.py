"""
Time source used by every polling and backoff loop.

Components never call time.sleep() or datetime.now() directly; they take a
Clock so tests can substitute a virtual one and fast-forward.
"""

import time
from datetime import datetime


class Clock:
    """Wall clock, monotonic clock and sleep backed by the real system."""

    def now(self) -> datetime:
        """Local time, timezone-aware."""
        return datetime.now().astimezone()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def timestamp(self) -> str:
        """ISO-8601 timestamp with seconds precision (``date -Is`` style)."""
        return self.now().isoformat(timespec='seconds')


SYSTEM_CLOCK = Clock()
