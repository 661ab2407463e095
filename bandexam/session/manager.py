"""
Session Manager.

Owns the submission state machine and drives the answer store, evaluators
and band aggregation against the persisted submission.

Every operation runs in one transaction. Status changes are written with a
status-guarded UPDATE, so of two racing calls exactly one moves the
submission and the other sees zero rows updated:
- two `start` calls for one (user, test): the partial unique index rejects
  the second insert -> ConflictError
- two `submit` calls: the second guarded update misses -> InvalidStateTransition

Scoring runs before the guarded update inside the same transaction; a
ScoringError therefore leaves the submission in its previous status with
nothing written. Collaborator calls (attempt counter, completion stats,
notification, review queue) happen after commit and are never allowed to
undo it.

Usage:
    manager = SessionManager(session_factory, content_provider)
    record = manager.start("ielts-academic-1", user_id)
    manager.save_progress(record.id, user_id, {"reading": [...]})
    record = manager.submit(record.id, user_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from bandexam.content.models import OBJECTIVE_SKILLS, PRODUCTIVE_SKILLS, Skill, TestContent
from bandexam.content.provider import ContentProvider
from bandexam.core.clock import Clock, TimeSnapshot
from bandexam.core.exceptions import (
    ConflictError,
    ExamEngineError,
    InvalidStateTransition,
    NotFoundError,
    ScoringError,
    ValidationError,
)
from bandexam.core.states import (
    NON_TERMINAL_STATUSES,
    SCORED_STATUSES,
    SessionEvent,
    SubmissionStatus,
    can_transition,
    sources_for,
    target_for,
)
from bandexam.db.database import session_scope
from bandexam.db.repository import (
    SubmissionRecord,
    SubmissionRepository,
    at_least,
    minus_floored,
    plus,
)
from bandexam.scoring.bands import ScoreAggregator, ScoreSheet, is_valid_band
from bandexam.scoring.evaluators import EvaluationResult, evaluate
from bandexam.scoring.evaluators.base import is_blank
from bandexam.session.answer_store import AnswerStore
from bandexam.session.collaborators import (
    LoggingNotifier,
    LoggingReviewQueue,
    Notifier,
    ReviewQueue,
)
from bandexam.session.schemas import AnswerDelta, parse_answer_delta, parse_cursor

ISSUE_SEVERITIES = ("low", "medium", "high", "critical")


@dataclass
class ProgressResult:
    """Outcome of a progress save."""

    submission: SubmissionRecord
    completion_percentage: int


@dataclass
class _Finalized:
    record: SubmissionRecord
    test: TestContent
    sheet: ScoreSheet
    needs_review: bool


class SessionManager:
    """State machine and orchestration over the submission store."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None,
        content: ContentProvider,
        notifier: Notifier | None = None,
        review: ReviewQueue | None = None,
        clock: Clock | None = None,
        aggregator: ScoreAggregator | None = None,
        notify_on_expire: bool = True,
    ):
        self._session_factory = session_factory
        self.content = content
        self.notifier = notifier or LoggingNotifier()
        self.review = review or LoggingReviewQueue()
        self.clock = clock or Clock()
        self.aggregator = aggregator or ScoreAggregator()
        self.notify_on_expire = notify_on_expire

    def _scope(self):
        return session_scope(self._session_factory)

    # ========================================
    # Lifecycle
    # ========================================

    def start(self, test_id: str, user_id: str) -> SubmissionRecord:
        """
        Create a submission and move it to in_progress.

        Raises:
            NotFoundError: test missing or not active
            ConflictError: the user already has a non-terminal submission for the test
        """
        test = self.content.get_active_test(test_id)
        if test is None:
            raise NotFoundError(
                f"Test {test_id} not found or not active", context={"test_id": test_id}
            )

        now = self.clock.now()
        first_skill = test.first_skill()

        with self._scope() as session:
            repo = SubmissionRepository(session)
            if repo.find_active(user_id, test_id) is not None:
                raise ConflictError(
                    "An active submission already exists for this test",
                    context={"test_id": test_id},
                )
            try:
                created = repo.create(
                    test_id=test_id,
                    user_id=user_id,
                    status=SubmissionStatus.CREATED,
                    started_at=now,
                    duration_seconds=test.duration_seconds,
                    remaining_seconds=test.duration_seconds,
                    deadline_at=self.clock.deadline(now, 0, test.duration_seconds),
                    current_skill=first_skill.value if first_skill else None,
                    current_section_index=0,
                    current_question_index=0,
                    total_questions=test.total_items(),
                )
            except IntegrityError as e:
                # Lost the race against a concurrent start for the same pair
                raise ConflictError(
                    "An active submission already exists for this test",
                    context={"test_id": test_id},
                ) from e

            self._transition(repo, created, SessionEvent.START)
            record = repo.get(created.id)

        logger.info("Started submission {} (user {}, test {})", record.id, user_id, test_id)

        try:
            self.content.increment_attempt_counter(test_id)
        except Exception:  # Intentionally broad - the attempt is already committed
            logger.exception("Failed to increment attempt counter for test {}", test_id)

        return record

    def save_progress(
        self,
        submission_id: str,
        user_id: str,
        answer_delta: AnswerDelta | Mapping[str, Any] | None = None,
        cursor: Mapping[str, Any] | None = None,
        elapsed_delta: int | None = None,
    ) -> ProgressResult:
        """
        Merge incremental answers and bookkeeping into an active submission.

        Re-sending a delta that was already applied leaves the answers unchanged.
        `elapsed_delta` is the client-reported active time since its last save;
        it only drives the displayed countdown.

        Raises:
            NotFoundError: submission missing, not owned, or not in_progress/paused
            ValidationError: malformed payload or ids that are not in the test
        """
        delta = parse_answer_delta(answer_delta)
        parsed_cursor = parse_cursor(cursor)
        if elapsed_delta is not None and elapsed_delta < 0:
            raise ValidationError("elapsed_delta must be non-negative", field="elapsed_delta")

        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            if not can_transition(record.status, SessionEvent.SAVE_PROGRESS):
                raise NotFoundError(
                    "No active submission to save progress for",
                    context={"submission_id": submission_id, "status": record.status.value},
                )

            test = self._require_test(record)
            self._validate_delta(test, delta)

            now = self.clock.now()
            snap = self._snapshot(record, now)
            values: dict[str, Any] = {
                "elapsed_seconds": at_least("elapsed_seconds", snap.elapsed_seconds),
            }
            if parsed_cursor is not None:
                if parsed_cursor.skill is not None:
                    values["current_skill"] = parsed_cursor.skill.value
                if parsed_cursor.section_index is not None:
                    values["current_section_index"] = parsed_cursor.section_index
                if parsed_cursor.question_index is not None:
                    values["current_question_index"] = parsed_cursor.question_index
            if elapsed_delta:
                values["client_elapsed_seconds"] = plus("client_elapsed_seconds", elapsed_delta)
                values["remaining_seconds"] = minus_floored("remaining_seconds", elapsed_delta)

            # Claim the row before touching answers so a concurrent submit either
            # scores this save or rejects it
            updated = repo.claim(record.id, sources_for(SessionEvent.SAVE_PROGRESS), **values)
            if updated is None:
                self._raise_lost_race(repo, record.id, SessionEvent.SAVE_PROGRESS)

            store = repo.load_answers(record.id)
            store.merge(delta)
            written = repo.write_answers(record.id, store, delta, now)
            percentage = store.completion_percentage(test.total_items())

        logger.debug(
            "Saved progress for {}: {} answers written, {}% complete",
            submission_id,
            written,
            percentage,
        )
        return ProgressResult(submission=updated, completion_percentage=percentage)

    def pause(self, submission_id: str, user_id: str) -> SubmissionRecord:
        """
        Pause an in-progress submission; the countdown freezes until resume.

        Raises:
            NotFoundError: submission missing or not owned
            InvalidStateTransition: not in_progress, or the test forbids pausing
        """
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            self._require(record, SessionEvent.PAUSE)

            test = self._require_test(record)
            if not test.allow_pause:
                raise InvalidStateTransition(
                    record.status.value, SessionEvent.PAUSE.value, "This test does not allow pausing"
                )

            now = self.clock.now()
            snap = self._snapshot(record, now)
            values: dict[str, Any] = {
                "paused_at": now,
                "elapsed_seconds": at_least("elapsed_seconds", snap.elapsed_seconds),
                "pause_count": plus("pause_count"),
            }
            if snap.remaining_seconds is not None:
                values["remaining_seconds"] = self._display_remaining(record, snap)
                # An attempt paused after its deadline keeps the deadline so the sweep expires it
                if snap.remaining_seconds > 0:
                    values["deadline_at"] = None

            self._transition(repo, record, SessionEvent.PAUSE, **values)
            updated = repo.get(record.id)

        logger.info("Paused submission {} ({}s elapsed)", submission_id, updated.elapsed_seconds)
        return updated

    def resume(self, submission_id: str, user_id: str) -> SubmissionRecord:
        """
        Resume a paused submission without charging the paused interval.

        Raises:
            NotFoundError: submission missing or not owned
            InvalidStateTransition: not paused
        """
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            self._require(record, SessionEvent.RESUME)

            now = self.clock.now()
            pause_length = self.clock.pause_length(record.paused_at, now) if record.paused_at else 0
            paused_seconds = record.paused_seconds + pause_length

            self._transition(
                repo,
                record,
                SessionEvent.RESUME,
                paused_at=None,
                paused_seconds=paused_seconds,
                deadline_at=self.clock.deadline(
                    record.started_at, paused_seconds, record.duration_seconds
                ),
                resume_count=plus("resume_count"),
            )
            updated = repo.get(record.id)

        logger.info("Resumed submission {} after {}s paused", submission_id, pause_length)
        return updated

    def submit(
        self,
        submission_id: str,
        user_id: str,
        final_answer_delta: AnswerDelta | Mapping[str, Any] | None = None,
    ) -> SubmissionRecord:
        """
        Merge trailing answers, score, and complete the submission. Runs at most once.

        Raises:
            NotFoundError: submission missing or not owned
            InvalidStateTransition: already terminal, or a concurrent submit won
            ValidationError: malformed trailing answers
            ScoringError: test content unavailable or inconsistent with stored answers
        """
        delta = parse_answer_delta(final_answer_delta)

        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            self._require(record, SessionEvent.SUBMIT)

            finalized = self._finalize(repo, record, delta, SessionEvent.SUBMIT)
            if finalized is None:
                self._raise_lost_race(repo, record.id, SessionEvent.SUBMIT)

        logger.info(
            "Submission {} completed: overall={}",
            submission_id,
            finalized.record.scores.get("overall"),
        )
        self._after_scoring(finalized, SessionEvent.SUBMIT)
        return finalized.record

    def expire(self, submission_id: str) -> SubmissionRecord:
        """
        Score and expire a submission whose time has run out.

        Idempotent: returns the stored record unchanged when the submission is
        already completed/expired or when server time has not run out yet.

        Raises:
            NotFoundError: submission missing
            InvalidStateTransition: submission is created or abandoned
            ScoringError: test content unavailable or inconsistent with stored answers
        """
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = repo.get(submission_id)
            if record is None:
                raise NotFoundError("Submission not found", context={"submission_id": submission_id})
            if record.status in SCORED_STATUSES:
                return record
            self._require(record, SessionEvent.TIMEOUT)

            snap = self._snapshot(record, self.clock.now())
            if not snap.is_over:
                logger.debug(
                    "Submission {} still has {}s remaining; not expiring",
                    submission_id,
                    snap.remaining_seconds,
                )
                return record

            finalized = self._finalize(repo, record, AnswerDelta(), SessionEvent.TIMEOUT)
            if finalized is None:
                current = repo.get(submission_id)
                if current is not None and current.status in SCORED_STATUSES:
                    return current
                self._raise_lost_race(repo, submission_id, SessionEvent.TIMEOUT)

        logger.info(
            "Submission {} expired: overall={}",
            submission_id,
            finalized.record.scores.get("overall"),
        )
        self._after_scoring(finalized, SessionEvent.TIMEOUT)
        return finalized.record

    def abandon(self, submission_id: str, user_id: str) -> SubmissionRecord:
        """
        Give up a non-terminal submission. Nothing is scored.

        Raises:
            NotFoundError: submission missing or not owned
            InvalidStateTransition: already terminal
        """
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            self._require(record, SessionEvent.ABANDON)

            now = self.clock.now()
            snap = self._snapshot(record, now)
            self._transition(
                repo,
                record,
                SessionEvent.ABANDON,
                ended_at=now,
                elapsed_seconds=at_least("elapsed_seconds", snap.elapsed_seconds),
                paused_at=None,
                deadline_at=None,
            )
            updated = repo.get(record.id)

        logger.info("Submission {} abandoned", submission_id)
        return updated

    def delete(self, submission_id: str, user_id: str) -> None:
        """
        Remove a non-terminal submission and its answers.

        Raises:
            NotFoundError: submission missing, not owned, or already terminal
        """
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            if record.is_terminal or not repo.delete_if(record.id, NON_TERMINAL_STATUSES):
                raise NotFoundError(
                    "No active submission to delete",
                    context={"submission_id": submission_id, "status": record.status.value},
                )

        logger.info("Deleted submission {}", submission_id)

    # ========================================
    # Reads
    # ========================================

    def get(self, submission_id: str, user_id: str) -> SubmissionRecord:
        with self._scope() as session:
            return self._load_owned(SubmissionRepository(session), submission_id, user_id)

    def get_answers(self, submission_id: str, user_id: str) -> AnswerStore:
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            return repo.load_answers(record.id)

    def list_submissions(
        self, user_id: str, status: SubmissionStatus | None = None, limit: int = 50
    ) -> list[SubmissionRecord]:
        with self._scope() as session:
            return SubmissionRepository(session).list_for_user(user_id, status, limit)

    def get_results(self, submission_id: str, user_id: str) -> dict[str, Any]:
        """
        Scores, results and the correct answers for a scored submission.

        Raises:
            NotFoundError: submission missing, not owned, or not scored yet
        """
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            if record.status not in SCORED_STATUSES:
                raise NotFoundError(
                    "Results are not available until the submission is scored",
                    context={"submission_id": submission_id, "status": record.status.value},
                )
            answers = repo.load_answers(record.id)

        test = self.content.get_active_test(record.test_id)
        correct_answers: dict[str, dict[str, dict[str, Any]]] = {}
        if test is not None:
            for skill in OBJECTIVE_SKILLS:
                correct_answers[skill.value] = {
                    section.id: {q.id: q.content.expected_answer() for q in section.questions}
                    for section in test.sections_for(skill)
                }

        return {
            "submission": record.to_dict(),
            "test_title": test.title if test is not None else None,
            "scores": record.scores,
            "results": record.results,
            "answers": answers.to_dict(),
            "correct_answers": correct_answers,
        }

    # ========================================
    # Review and annotations
    # ========================================

    def request_manual_review(self, submission_id: str, user_id: str) -> SubmissionRecord:
        """
        Ask for a human review of a scored submission.

        Raises:
            NotFoundError: submission missing or not owned
            InvalidStateTransition: submission not scored yet
            ConflictError: already reviewed, or review already pending
        """
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            if record.status not in SCORED_STATUSES:
                raise InvalidStateTransition(
                    record.status.value,
                    "request_manual_review",
                    "Only scored submissions can be reviewed",
                )
            if record.is_reviewed:
                raise ConflictError("Submission has already been reviewed")
            if record.needs_manual_review:
                raise ConflictError("Manual review has already been requested")

            if not repo.guarded_update(
                record.id,
                SCORED_STATUSES,
                needs_manual_review=True,
                manual_review_requested_at=self.clock.now(),
            ):
                self._raise_lost_race(repo, record.id, "request_manual_review")
            updated = repo.get(record.id)

        self._flag_for_review(submission_id)
        return updated

    def apply_manual_score(
        self,
        submission_id: str,
        skill: Skill | str,
        score: float,
        reviewer: str | None = None,
    ) -> SubmissionRecord:
        """
        Record a writing/speaking band from the review collaborator.

        The overall band is recomputed. Once every productive skill the test
        assesses has a band, the submission is marked reviewed.

        Raises:
            ValidationError: skill is not writing/speaking or score is off the band grid
            NotFoundError: submission missing
            InvalidStateTransition: submission not scored yet
        """
        try:
            skill = Skill(str(skill.value if isinstance(skill, Skill) else skill).lower())
        except ValueError as e:
            raise ValidationError(f"Unknown skill '{skill}'", field="skill") from e
        if skill not in PRODUCTIVE_SKILLS:
            raise ValidationError(
                "Manual scores are accepted for writing and speaking only", field="skill"
            )
        if not isinstance(score, (int, float)) or isinstance(score, bool) or not is_valid_band(score):
            raise ValidationError(
                "Score must be between 1.0 and 9.0 in steps of 0.5", field="score"
            )

        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = repo.get(submission_id)
            if record is None:
                raise NotFoundError("Submission not found", context={"submission_id": submission_id})
            if record.status not in SCORED_STATUSES:
                raise InvalidStateTransition(
                    record.status.value,
                    "apply_manual_score",
                    "Manual scores can only be applied to scored submissions",
                )

            scores = dict(record.scores or {})
            scores[skill.value] = float(score)
            scores["overall"] = self.aggregator.recompute_overall(scores)

            test = self.content.get_active_test(record.test_id)
            assessed = test.assessed_productive_skills() if test is not None else [skill]
            values: dict[str, Any] = {
                "scores": scores,
                "reviewed_by": reviewer,
                "reviewed_at": self.clock.now(),
            }
            if all(scores.get(s.value) for s in assessed):
                values["needs_manual_review"] = False
                values["is_reviewed"] = True

            if not repo.guarded_update(record.id, SCORED_STATUSES, **values):
                self._raise_lost_race(repo, record.id, "apply_manual_score")
            updated = repo.get(record.id)

        logger.info(
            "Manual {} band {} applied to {} (overall now {})",
            skill.value,
            score,
            submission_id,
            scores["overall"],
        )
        return updated

    def report_issue(
        self,
        submission_id: str,
        user_id: str,
        issue_type: str,
        description: str = "",
        severity: str = "medium",
    ) -> SubmissionRecord:
        """Log a technical issue against a submission in any status."""
        if not issue_type or not issue_type.strip():
            raise ValidationError("issue_type is required", field="issue_type")
        if severity not in ISSUE_SEVERITIES:
            raise ValidationError(
                f"severity must be one of {', '.join(ISSUE_SEVERITIES)}", field="severity"
            )

        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            warning = f"[{severity}] {issue_type.strip()}: {description.strip()}".rstrip(": ")
            claimed = repo.claim(record.id, list(SubmissionStatus), has_technical_issues=True)
            if claimed is None:
                raise NotFoundError("Submission not found", context={"submission_id": submission_id})
            updated = self._append_warning(repo, claimed, warning)

        logger.warning("Technical issue on submission {}: {}", submission_id, warning)
        return updated

    def record_tab_switch(self, submission_id: str, user_id: str) -> SubmissionRecord:
        """Count a tab switch during an active attempt."""
        with self._scope() as session:
            repo = SubmissionRepository(session)
            record = self._load_owned(repo, submission_id, user_id)
            if not can_transition(record.status, SessionEvent.SAVE_PROGRESS):
                raise InvalidStateTransition(record.status.value, "record_tab_switch")

            now = self.clock.now()
            claimed = repo.claim(
                record.id, sources_for(SessionEvent.SAVE_PROGRESS), tab_switches=plus("tab_switches")
            )
            if claimed is None:
                self._raise_lost_race(repo, record.id, "record_tab_switch")
            warning = f"Tab switch #{claimed.tab_switches} at {now.isoformat(timespec='seconds')}"
            updated = self._append_warning(repo, claimed, warning)

        return updated

    def _append_warning(
        self, repo: SubmissionRepository, claimed: SubmissionRecord, warning: str
    ) -> SubmissionRecord:
        # The caller holds the row, so claimed.warnings is the latest committed list
        repo.guarded_update(claimed.id, [claimed.status], warnings=[*claimed.warnings, warning])
        return repo.get(claimed.id)

    # ========================================
    # Expiry
    # ========================================

    def expire_overdue(self, limit: int = 100) -> list[str]:
        """
        Expire every active submission past its deadline.

        A failure on one submission is logged and the sweep moves on.

        Returns:
            Ids of submissions that were expired by this call
        """
        with self._scope() as session:
            candidates = SubmissionRepository(session).find_overdue(self.clock.now(), limit)

        expired: list[str] = []
        for submission_id in candidates:
            try:
                record = self.expire(submission_id)
            except ExamEngineError as e:
                logger.warning("Could not expire submission {}: {}", submission_id, e.message)
                continue
            except Exception:  # Intentionally broad - one bad record must not stop the sweep
                logger.exception("Unexpected error expiring submission {}", submission_id)
                continue
            if record.status == SubmissionStatus.EXPIRED:
                expired.append(submission_id)

        if candidates:
            logger.info("Expiry sweep: {}/{} overdue submissions expired", len(expired), len(candidates))
        return expired

    # ========================================
    # Helpers
    # ========================================

    def _load_owned(
        self, repo: SubmissionRepository, submission_id: str, user_id: str
    ) -> SubmissionRecord:
        record = repo.get(submission_id)
        if record is None or record.user_id != user_id:
            raise NotFoundError("Submission not found", context={"submission_id": submission_id})
        return record

    def _require(self, record: SubmissionRecord, event: SessionEvent) -> None:
        if not can_transition(record.status, event):
            raise InvalidStateTransition(record.status.value, event.value)

    def _require_test(self, record: SubmissionRecord) -> TestContent:
        test = self.content.get_active_test(record.test_id)
        if test is None:
            raise NotFoundError(
                f"Test {record.test_id} is no longer available",
                context={"test_id": record.test_id},
            )
        return test

    def _transition(
        self,
        repo: SubmissionRepository,
        record: SubmissionRecord,
        event: SessionEvent,
        **values: Any,
    ) -> None:
        target = target_for(event)
        if target is not None:
            values["status"] = target
        if not repo.guarded_update(record.id, sources_for(event), **values):
            self._raise_lost_race(repo, record.id, event)

    def _raise_lost_race(
        self, repo: SubmissionRepository, submission_id: str, event: SessionEvent | str
    ) -> None:
        event_name = event.value if isinstance(event, SessionEvent) else event
        current = repo.get(submission_id)
        if current is None:
            raise NotFoundError("Submission not found", context={"submission_id": submission_id})
        raise InvalidStateTransition(current.status.value, event_name)

    def _snapshot(self, record: SubmissionRecord, now: datetime) -> TimeSnapshot:
        return self.clock.snapshot(
            record.started_at,
            paused_seconds=record.paused_seconds,
            duration_seconds=record.duration_seconds,
            now=now,
            paused_at=record.paused_at,
        )

    @staticmethod
    def _display_remaining(record: SubmissionRecord, snap: TimeSnapshot) -> int | None:
        """Remaining time shown to the client: never above the server's value."""
        if snap.remaining_seconds is None:
            return record.remaining_seconds
        if record.remaining_seconds is None:
            return snap.remaining_seconds
        return min(record.remaining_seconds, snap.remaining_seconds)

    def _validate_delta(self, test: TestContent, delta: AnswerDelta) -> None:
        for skill, entry in delta.entries():
            known = test.item_ids(skill)
            if entry.section_id not in known:
                raise ValidationError(
                    f"Unknown {skill.value} section '{entry.section_id}'",
                    field=f"{skill.value}.section_id",
                    context={"section_id": entry.section_id},
                )
            unknown = sorted(set(entry.answers) - known[entry.section_id])
            if unknown:
                raise ValidationError(
                    f"Unknown question id '{unknown[0]}' in {skill.value} section '{entry.section_id}'",
                    field=f"{skill.value}.answers.{unknown[0]}",
                    context={"section_id": entry.section_id, "unknown": unknown},
                )

    def _check_consistency(self, test: TestContent, store: AnswerStore) -> None:
        for skill, section_id, question_id, _ in store.iter_answers():
            ids = test.item_ids(skill).get(section_id)
            if ids is None or question_id not in ids:
                raise ScoringError(
                    "Stored answers do not match the test content",
                    context={
                        "skill": skill.value,
                        "section_id": section_id,
                        "question_id": question_id,
                    },
                )

    def _evaluate(
        self, test: TestContent, store: AnswerStore
    ) -> tuple[dict[Skill, list[EvaluationResult]], list[dict[str, Any]]]:
        """Evaluate every objective question, answered or not."""
        evaluations: dict[Skill, list[EvaluationResult]] = {}
        analysis: list[dict[str, Any]] = []

        for skill in OBJECTIVE_SKILLS:
            results: list[EvaluationResult] = []
            for section in test.sections_for(skill):
                for question in section.questions:
                    answer = store.get(skill, section.id, question.id)
                    result = evaluate(question, answer)
                    results.append(result)
                    entry = {
                        "question_id": question.id,
                        "skill": skill.value,
                        "section_id": section.id,
                        "user_answer": answer,
                        "correct_answer": result.correct_answer,
                        "is_correct": result.correct,
                        "points": result.points,
                    }
                    if result.warning:
                        entry["warning"] = result.warning
                    analysis.append(entry)
            if results:
                evaluations[skill] = results

        return evaluations, analysis

    def _finalize(
        self,
        repo: SubmissionRepository,
        record: SubmissionRecord,
        delta: AnswerDelta,
        event: SessionEvent,
    ) -> _Finalized | None:
        """
        Score the submission and write the terminal status.

        Returns None when the submission already moved on; nothing is
        written in that case. The row is claimed before the answers are
        read, so progress saves racing with scoring wait and then fail.
        """
        test = self.content.get_active_test(record.test_id)
        if test is None:
            raise ScoringError(
                f"Test {record.test_id} is unavailable; submission left {record.status.value}",
                context={"test_id": record.test_id, "status": record.status.value},
            )

        claimed = repo.claim(record.id, sources_for(event))
        if claimed is None:
            return None
        record = claimed

        now = self.clock.now()
        store = repo.load_answers(record.id)
        if not delta.is_empty():
            self._validate_delta(test, delta)
            store.merge(delta)
            repo.write_answers(record.id, store, delta, now)

        self._check_consistency(test, store)

        evaluations, analysis = self._evaluate(test, store)
        sheet = self.aggregator.aggregate(evaluations, record.scores)

        answered_productive = {
            skill for skill, _, _, value in store.iter_answers()
            if skill in PRODUCTIVE_SKILLS and not is_blank(value)
        }
        needs_review = any(skill not in sheet.bands for skill in answered_productive)

        snap = self._snapshot(record, now)
        results = {
            "total_questions": sheet.total_questions,
            "correct_answers": sheet.correct_answers,
            "skill_breakdown": {skill.value: t.to_dict() for skill, t in sheet.breakdown.items()},
            "question_analysis": analysis,
            "completion_percentage": store.completion_percentage(test.total_items()),
        }

        target = target_for(event)
        updated = repo.guarded_update(
            record.id,
            sources_for(event),
            status=target,
            ended_at=now,
            elapsed_seconds=at_least("elapsed_seconds", snap.elapsed_seconds),
            remaining_seconds=self._display_remaining(record, snap),
            paused_at=None,
            deadline_at=None,
            scores=sheet.to_scores_dict(),
            results=results,
            needs_manual_review=needs_review,
        )
        if not updated:
            return None

        return _Finalized(
            record=repo.get(record.id),
            test=test,
            sheet=sheet,
            needs_review=needs_review,
        )

    def _after_scoring(self, finalized: _Finalized, event: SessionEvent) -> None:
        """Collaborator calls after commit. Failures are logged, never raised."""
        record = finalized.record
        completion_minutes = round(record.elapsed_seconds / 60)
        overall = (record.scores or {}).get("overall")

        try:
            self.content.record_completion_stats(record.test_id, completion_minutes, overall)
        except Exception:  # Intentionally broad - completion is already committed
            logger.exception("Failed to record completion stats for test {}", record.test_id)

        if event == SessionEvent.SUBMIT or self.notify_on_expire:
            try:
                self.notifier.on_submission_completed(
                    record.user_id, finalized.test.title, record.scores or {}, completion_minutes
                )
            except Exception:  # Intentionally broad - notification is fire-and-forget
                logger.exception("Completion notification failed for submission {}", record.id)

        if finalized.needs_review:
            self._flag_for_review(record.id)

    def _flag_for_review(self, submission_id: str) -> None:
        try:
            self.review.flag_for_manual_review(submission_id)
        except Exception:  # Intentionally broad - review queue is an external collaborator
            logger.exception("Failed to flag submission {} for manual review", submission_id)
