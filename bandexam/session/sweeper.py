"""
Expiry sweeper.

Runs SessionManager.expire_overdue() on a fixed interval in a background
thread. The sweep is independent of any request path; expire() is
idempotent, so overlapping sweeps (several API workers, a cron job) are safe.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from bandexam.core.clock import utcnow
from bandexam.session.manager import SessionManager


@dataclass
class SweepStatus:
    """Current sweeper status."""

    is_running: bool = False
    last_run_at: datetime | None = None
    last_expired_count: int = 0
    total_expired: int = 0
    total_runs: int = 0
    error_message: str | None = None


@dataclass
class ExpirySweeper:
    """
    Periodic expiry sweep.

    Usage:
        sweeper = ExpirySweeper(manager, interval_seconds=60)
        sweeper.start()
        # ... server runs ...
        sweeper.stop()
    """

    manager: SessionManager
    interval_seconds: int = 60
    batch_size: int = 100

    # Internal state
    _status: SweepStatus = field(default_factory=SweepStatus)
    _thread: threading.Thread | None = field(default=None, repr=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def status(self) -> SweepStatus:
        return self._status

    def run_once(self) -> list[str]:
        """Run a single sweep (blocking). Returns the expired submission ids."""
        self._status.last_run_at = utcnow()
        self._status.total_runs += 1
        try:
            expired = self.manager.expire_overdue(limit=self.batch_size)
        except Exception as exc:  # Intentionally broad - keep the loop alive across DB hiccups
            logger.exception("Expiry sweep failed")
            self._status.error_message = str(exc)
            return []

        self._status.error_message = None
        self._status.last_expired_count = len(expired)
        self._status.total_expired += len(expired)
        return expired

    def start(self) -> None:
        if self._status.is_running:
            logger.warning("Expiry sweeper already running")
            return

        self._status.is_running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever,
            name="expiry-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("Expiry sweeper started (interval: {}s)", self.interval_seconds)

    def stop(self) -> None:
        """Stop the sweeper gracefully."""
        if not self._status.is_running:
            return

        logger.info("Stopping expiry sweeper...")
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self._status.is_running = False
        logger.info("Expiry sweeper stopped")

    def run_forever(self) -> None:
        """Sweep immediately, then every interval until stop() is called."""
        while not self._stop_event.is_set():
            self.run_once()
            if self._stop_event.wait(timeout=self.interval_seconds):
                break
