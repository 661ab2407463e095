"""
Content collaborator.

The engine consumes three operations from whatever owns published tests:
- get_active_test(test_id): the test tree with correct answers, or None
- increment_attempt_counter(test_id): called once per started attempt
- record_completion_stats(test_id, completion_minutes, overall_score)

Two implementations ship with the engine: an in-memory provider (tests and
embedding) and a JSON-directory provider (one published test per file).
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from bandexam.content.models import TestContent


class ContentProvider(Protocol):
    """Read access to published tests plus attempt statistics."""

    def get_active_test(self, test_id: str) -> TestContent | None:
        ...

    def increment_attempt_counter(self, test_id: str) -> None:
        ...

    def record_completion_stats(
        self, test_id: str, completion_minutes: int, overall_score: float | None
    ) -> None:
        ...


@dataclass
class TestStatistics:
    """Running attempt statistics for one test."""

    __test__ = False

    started_attempts: int = 0
    completed_attempts: int = 0
    average_score: float = 0.0
    average_completion_minutes: float = 0.0

    def record(self, completion_minutes: int, overall_score: float | None) -> None:
        self.completed_attempts += 1
        n = self.completed_attempts
        if overall_score is not None:
            self.average_score = (self.average_score * (n - 1) + overall_score) / n
        if completion_minutes:
            self.average_completion_minutes = (
                self.average_completion_minutes * (n - 1) + completion_minutes
            ) / n


class InMemoryContentProvider:
    """Holds tests in a dict; statistics are kept alongside."""

    def __init__(self, tests: Iterable[TestContent] = ()):
        self._tests: dict[str, TestContent] = {t.id: t for t in tests}
        self._stats: dict[str, TestStatistics] = {}
        self._lock = threading.Lock()

    def add(self, test: TestContent) -> None:
        self._tests[test.id] = test

    def tests(self) -> list[TestContent]:
        """Every loaded test, active or not, ordered by id."""
        return sorted(self._tests.values(), key=lambda t: t.id)

    def get_active_test(self, test_id: str) -> TestContent | None:
        test = self._tests.get(test_id)
        if test is None or not test.is_active:
            return None
        return test

    def increment_attempt_counter(self, test_id: str) -> None:
        with self._lock:
            self._stats.setdefault(test_id, TestStatistics()).started_attempts += 1

    def record_completion_stats(
        self, test_id: str, completion_minutes: int, overall_score: float | None
    ) -> None:
        with self._lock:
            self._stats.setdefault(test_id, TestStatistics()).record(
                completion_minutes, overall_score
            )

    def statistics(self, test_id: str) -> TestStatistics:
        return self._stats.get(test_id, TestStatistics())


class JsonContentProvider(InMemoryContentProvider):
    """
    Loads every ``*.json`` file in a directory as one test.

    Files that fail validation are skipped with a warning so that one broken
    test does not take the whole catalogue down.
    """

    def __init__(self, content_dir: str | Path):
        self.content_dir = Path(content_dir)
        super().__init__(self._load_all())

    def _load_all(self) -> list[TestContent]:
        if not self.content_dir.is_dir():
            logger.warning("Content directory not found: {}", self.content_dir)
            return []

        tests = []
        for filepath in sorted(self.content_dir.glob("*.json")):
            try:
                with open(filepath, "r", encoding="utf-8") as f:
                    tests.append(TestContent.model_validate(json.load(f)))
            except (json.JSONDecodeError, PydanticValidationError) as e:
                logger.warning("Skipping invalid test file {}: {}", filepath.name, e)

        logger.info("Loaded {} tests from {}", len(tests), self.content_dir)
        return tests

    def reload(self) -> int:
        """Re-read the directory. Returns the number of tests loaded."""
        tests = self._load_all()
        self._tests = {t.id: t for t in tests}
        return len(tests)
