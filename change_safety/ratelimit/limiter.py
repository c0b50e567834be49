"""
Rate Limiter — caps executed changes in a trailing time window.

Behavioral Contract:
- allow() is True while fewer than ``max_changes`` counted executions fall
  inside the trailing window
- The count is taken by filtering recorded timestamps, never by a decaying
  counter, so bursts are counted exactly
- Which executions count is an explicit policy: successes only (default) or
  every attempt
- State is in-memory and lives as long as the process
"""

from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Optional

from change_safety.models.config import RateLimitPolicy


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """Sliding-window limiter over execution timestamps."""

    def __init__(
        self,
        max_changes: int = 3,
        window: timedelta = timedelta(hours=1),
        policy: RateLimitPolicy = RateLimitPolicy.SUCCESSES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_changes = max_changes
        self.window = window
        self.policy = policy
        self._clock = clock
        self._timestamps: Deque[datetime] = deque()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self.window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def count_in_window(self, now: Optional[datetime] = None) -> int:
        now = now or self._clock()
        self._prune(now)
        return sum(1 for ts in self._timestamps if ts <= now)

    def allow(self, now: Optional[datetime] = None) -> bool:
        """Whether one more execution fits in the window."""
        return self.count_in_window(now) < self.max_changes

    def record(self, success: bool, timestamp: Optional[datetime] = None) -> bool:
        """
        Record a finished execution. Returns True if it was counted.

        Under the SUCCESSES policy a failed (reverted) execution is not
        counted, so a run of failing changes is never throttled.
        """
        if self.policy == RateLimitPolicy.SUCCESSES and not success:
            return False
        timestamp = timestamp or self._clock()
        # Keep the deque ordered even if a caller records out of order.
        if self._timestamps and timestamp < self._timestamps[-1]:
            ordered = sorted(list(self._timestamps) + [timestamp])
            self._timestamps = deque(ordered)
        else:
            self._timestamps.append(timestamp)
        return True

    def reset(self) -> None:
        self._timestamps.clear()
