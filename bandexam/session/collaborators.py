"""
Outbound collaborators of the session engine.

Both are fire-and-forget from the engine's point of view: they are called
after the transaction commits and a failure is logged, never re-raised.
The default implementations only log; deployments plug in an email sender
or a review queue client.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from loguru import logger


class Notifier(Protocol):
    def on_submission_completed(
        self,
        user_id: str,
        test_title: str,
        scores: Mapping[str, Any],
        completion_minutes: int,
    ) -> None:
        ...


class ReviewQueue(Protocol):
    def flag_for_manual_review(self, submission_id: str) -> None:
        ...


class LoggingNotifier:
    """Notifier that records completions in the log."""

    def on_submission_completed(
        self,
        user_id: str,
        test_title: str,
        scores: Mapping[str, Any],
        completion_minutes: int,
    ) -> None:
        logger.info(
            "Completion notice for user {}: '{}' overall={} in {} min",
            user_id,
            test_title,
            scores.get("overall"),
            completion_minutes,
        )


class LoggingReviewQueue:
    """Review queue that only logs; the flag itself is stored on the submission."""

    def flag_for_manual_review(self, submission_id: str) -> None:
        logger.info("Submission {} flagged for manual review", submission_id)
