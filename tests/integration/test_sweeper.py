"""
Integration tests for the background expiry sweeper.
"""

from bandexam.core.states import SubmissionStatus
from bandexam.session.sweeper import ExpirySweeper


class TestExpirySweeper:
    def test_run_once_expires_overdue(self, manager, fake_clock):
        record = manager.start("academic-1", "user-1")
        fake_clock.advance(3601)

        sweeper = ExpirySweeper(manager, interval_seconds=60)
        expired = sweeper.run_once()

        assert expired == [record.id]
        assert sweeper.status.total_runs == 1
        assert sweeper.status.total_expired == 1
        assert manager.get(record.id, "user-1").status == SubmissionStatus.EXPIRED

    def test_second_sweep_finds_nothing(self, manager, fake_clock):
        manager.start("academic-1", "user-1")
        fake_clock.advance(3601)
        sweeper = ExpirySweeper(manager)

        sweeper.run_once()
        assert sweeper.run_once() == []
        assert sweeper.status.last_expired_count == 0
        assert sweeper.status.total_expired == 1

    def test_failure_is_recorded_not_raised(self, manager, monkeypatch):
        def broken(limit=100):
            raise RuntimeError("database went away")

        monkeypatch.setattr(manager, "expire_overdue", broken)
        sweeper = ExpirySweeper(manager)

        assert sweeper.run_once() == []
        assert sweeper.status.error_message == "database went away"

    def test_start_and_stop(self, manager):
        sweeper = ExpirySweeper(manager, interval_seconds=3600)

        sweeper.start()
        assert sweeper.status.is_running
        sweeper.stop()

        assert not sweeper.status.is_running
