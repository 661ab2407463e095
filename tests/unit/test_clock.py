"""
Unit tests for session time arithmetic.
"""

from datetime import datetime, timedelta

import pytest

from bandexam.core.clock import Clock

START = datetime(2025, 3, 1, 9, 0, 0)


def at(seconds: int) -> datetime:
    return START + timedelta(seconds=seconds)


class TestSnapshot:
    @pytest.fixture
    def clock(self):
        return Clock(now_fn=lambda: at(0))

    def test_elapsed_and_remaining(self, clock):
        snap = clock.snapshot(START, duration_seconds=3600, now=at(600))
        assert snap.elapsed_seconds == 600
        assert snap.remaining_seconds == 3000
        assert not snap.is_over

    def test_paused_seconds_excluded(self, clock):
        snap = clock.snapshot(START, paused_seconds=120, duration_seconds=3600, now=at(720))
        assert snap.elapsed_seconds == 600
        assert snap.remaining_seconds == 3000

    def test_frozen_while_paused(self, clock):
        """While paused, time stops at the pause instant."""
        snap = clock.snapshot(START, duration_seconds=3600, now=at(5000), paused_at=at(600))
        assert snap.elapsed_seconds == 600
        assert snap.remaining_seconds == 3000

    def test_remaining_floored_at_zero(self, clock):
        snap = clock.snapshot(START, duration_seconds=60, now=at(90))
        assert snap.remaining_seconds == 0
        assert snap.is_over

    def test_untimed(self, clock):
        snap = clock.snapshot(START, now=at(90))
        assert snap.remaining_seconds is None
        assert not snap.is_over

    def test_now_defaults_to_time_source(self):
        clock = Clock(now_fn=lambda: at(30))
        assert clock.snapshot(START).elapsed_seconds == 30

    def test_clock_skew_never_negative(self, clock):
        assert clock.snapshot(START, now=at(-5)).elapsed_seconds == 0


class TestDeadline:
    def test_deadline_includes_pauses(self):
        assert Clock().deadline(START, paused_seconds=120, duration_seconds=3600) == at(3720)

    def test_untimed_has_no_deadline(self):
        assert Clock().deadline(START) is None

    def test_pause_length(self):
        assert Clock.pause_length(at(100), at(220)) == 120
        assert Clock.pause_length(at(220), at(100)) == 0
