"""
Time sources for audit entry timestamps.

Production uses the system clock in UTC. Tests inject a FixedClock so that
hashes are reproducible across runs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock


class SystemClock:
    """Wall clock, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class FixedClock:
    """
    Deterministic clock for tests.

    Each call to now() returns the current value and then advances it by
    step, so consecutive entries still get strictly increasing timestamps.
    """
    current: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)
    step: timedelta = timedelta(seconds=1)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def now(self) -> datetime:
        with self._lock:
            value = self.current
            self.current = self.current + self.step
        return value
