"""
Session clock.

Pure time arithmetic for an attempt: given the start time, the accumulated
paused duration and "now", compute elapsed and remaining seconds. A paused
attempt is frozen at the moment it was paused, so the paused interval never
counts against the candidate.

All timestamps are naive UTC, matching what the database round-trips.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class TimeSnapshot:
    """Elapsed/remaining time at a given instant."""

    elapsed_seconds: int
    remaining_seconds: int | None  # None when the test has no time limit

    @property
    def is_over(self) -> bool:
        return self.remaining_seconds is not None and self.remaining_seconds <= 0


class Clock:
    """
    Stateless elapsed/remaining calculator with an injectable time source.

    Usage:
        clock = Clock()
        snap = clock.snapshot(started_at, paused_seconds=0, duration_seconds=3600)
    """

    def __init__(self, now_fn: Callable[[], datetime] | None = None):
        self._now_fn = now_fn or utcnow

    def now(self) -> datetime:
        return self._now_fn()

    def snapshot(
        self,
        started_at: datetime,
        paused_seconds: int = 0,
        duration_seconds: int | None = None,
        now: datetime | None = None,
        paused_at: datetime | None = None,
    ) -> TimeSnapshot:
        """
        Compute elapsed and remaining seconds.

        Args:
            started_at: When the attempt started
            paused_seconds: Total duration of completed pauses
            duration_seconds: Time limit, None for untimed tests
            now: Evaluation instant (defaults to the clock's now)
            paused_at: Start of the current pause, if the attempt is paused

        Returns:
            TimeSnapshot with elapsed excluding paused time and remaining
            floored at zero.
        """
        now = now or self.now()
        # A paused attempt is evaluated at the instant the pause began
        effective_now = min(now, paused_at) if paused_at is not None else now

        elapsed = (effective_now - started_at).total_seconds() - paused_seconds
        elapsed_seconds = max(0, int(elapsed))

        remaining = None
        if duration_seconds is not None:
            remaining = max(0, duration_seconds - elapsed_seconds)

        return TimeSnapshot(elapsed_seconds=elapsed_seconds, remaining_seconds=remaining)

    def deadline(
        self,
        started_at: datetime,
        paused_seconds: int = 0,
        duration_seconds: int | None = None,
    ) -> datetime | None:
        """Instant at which remaining time reaches zero if no further pause happens."""
        if duration_seconds is None:
            return None
        return started_at + timedelta(seconds=duration_seconds + paused_seconds)

    @staticmethod
    def pause_length(paused_at: datetime, now: datetime) -> int:
        """Whole seconds spent in a pause, never negative."""
        return max(0, int((now - paused_at).total_seconds()))
