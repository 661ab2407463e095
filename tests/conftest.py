"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Integration tests run against an in-memory SQLite database; nothing here
needs PostgreSQL.
"""
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Settings are cached on first use; point them at throwaway resources before any import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("EXPIRY_SWEEP_INTERVAL_SECONDS", "0")

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bandexam.content.models import TestContent  # noqa: E402
from bandexam.content.provider import InMemoryContentProvider  # noqa: E402
from bandexam.core.clock import Clock  # noqa: E402
from bandexam.db.database import create_db_engine, create_session_factory, init_db  # noqa: E402
from bandexam.session.manager import SessionManager  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


# ========================================
# Time
# ========================================


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 3, 1, 9, 0, 0)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def clock(fake_clock):
    return Clock(now_fn=fake_clock.now)


# ========================================
# Content
# ========================================


def _single_choice(question_id: str, correct: int = 1) -> dict:
    return {
        "_id": question_id,
        "type": "multiple_choice_single",
        "content": {
            "question": f"Question {question_id}",
            "options": ["A", "B", "C", "D"],
            "correctAnswer": correct,
        },
    }


@pytest.fixture
def sample_test_data():
    """A timed four-skill test: 10 reading questions, 2 listening, 1 writing task, 1 speaking part."""
    return {
        "_id": "academic-1",
        "title": "Academic Practice 1",
        "duration": 60,
        "allowPause": True,
        "skills": ["reading", "listening", "writing", "speaking"],
        "readingSections": [
            {
                "_id": "r1",
                "title": "Passage 1",
                "questions": [_single_choice(f"q{i}") for i in range(1, 11)],
            }
        ],
        "listeningSections": [
            {
                "_id": "l1",
                "title": "Recording 1",
                "questions": [
                    {
                        "_id": "lq1",
                        "type": "fill_in_blanks",
                        "content": {
                            "sentence": "Growth was ___",
                            "correctAnswers": ["13%", "13 percent"],
                        },
                    },
                    {
                        "_id": "lq2",
                        "type": "true_false_not_given",
                        "content": {"statement": "The library opens at 9.", "answer": "True"},
                    },
                ],
            }
        ],
        "writingTasks": [{"_id": "w1", "taskNumber": 1, "prompt": "Describe the chart."}],
        "speakingParts": [
            {
                "_id": "s1",
                "partNumber": 1,
                "questions": [{"_id": "s1q1", "question": "Where do you live?"}],
            }
        ],
    }


@pytest.fixture
def sample_test(sample_test_data):
    return TestContent.model_validate(sample_test_data)


@pytest.fixture
def strict_test():
    """A short test that does not allow pausing."""
    return TestContent.model_validate(
        {
            "_id": "strict-1",
            "title": "No Pause Test",
            "durationMinutes": 30,
            "allowPause": False,
            "readingSections": [{"_id": "r1", "questions": [_single_choice("q1", correct=0)]}],
        }
    )


@pytest.fixture
def untimed_test():
    return TestContent.model_validate(
        {
            "_id": "untimed-1",
            "title": "Untimed Practice",
            "readingSections": [{"_id": "r1", "questions": [_single_choice("q1")]}],
        }
    )


@pytest.fixture
def content_provider(sample_test, strict_test, untimed_test):
    return InMemoryContentProvider([sample_test, strict_test, untimed_test])


# ========================================
# Database & Engine
# ========================================


class RecordingNotifier:
    """Notifier that keeps every call for assertions."""

    def __init__(self):
        self.calls = []

    def on_submission_completed(self, user_id, test_title, scores, completion_minutes):
        self.calls.append((user_id, test_title, dict(scores), completion_minutes))


class RecordingReviewQueue:
    """Review queue that keeps flagged ids for assertions."""

    def __init__(self):
        self.flagged = []

    def flag_for_manual_review(self, submission_id):
        self.flagged.append(submission_id)


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def review_queue():
    return RecordingReviewQueue()


@pytest.fixture
def manager(session_factory, content_provider, notifier, review_queue, clock):
    return SessionManager(
        session_factory,
        content_provider,
        notifier=notifier,
        review=review_queue,
        clock=clock,
    )


@pytest.fixture
def reading_answers():
    """Answers for the 10-question reading section: 9 correct, q10 wrong."""
    answers = {f"q{i}": 1 for i in range(1, 10)}
    answers["q10"] = 3
    return {"reading": [{"sectionId": "r1", "answers": answers, "timeSpent": 300}]}
