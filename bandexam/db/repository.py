"""
Submission repository.

All status changes go through guarded_update(), which issues
    UPDATE exam_submissions SET ... WHERE id = :id AND status IN (:expected)
and reports whether exactly one row matched. A caller that loses a race sees
False and decides how to surface it.

Writers that read before they write (progress saves, scoring, warning
appends) first claim() the submission row. The claim is itself a guarded
update, so it takes the row lock (the database write lock on SQLite) and
later claims for the same submission wait until the holder commits.

Answers are merged by AnswerStore and written back as per-key upserts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from loguru import logger
from sqlalchemy import case, delete, null, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from bandexam.core.states import ACTIVE_STATUSES, NON_TERMINAL_STATUSES, SubmissionStatus
from bandexam.db.models import ExamSubmission, SubmissionAnswer, SubmissionSection
from bandexam.session.answer_store import AnswerStore
from bandexam.session.schemas import AnswerDelta


@dataclass
class SubmissionRecord:
    """Detached snapshot of one submission row."""

    id: str
    test_id: str
    user_id: str
    status: SubmissionStatus
    started_at: datetime
    ended_at: datetime | None
    duration_seconds: int | None
    elapsed_seconds: int
    remaining_seconds: int | None
    client_elapsed_seconds: int
    paused_at: datetime | None
    paused_seconds: int
    deadline_at: datetime | None
    current_skill: str | None
    current_section_index: int
    current_question_index: int
    total_questions: int
    scores: dict[str, Any] | None
    results: dict[str, Any] | None
    needs_manual_review: bool
    manual_review_requested_at: datetime | None
    is_reviewed: bool
    reviewed_by: str | None
    reviewed_at: datetime | None
    pause_count: int
    resume_count: int
    tab_switches: int
    has_technical_issues: bool
    warnings: list[Any] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view (datetimes as ISO strings)."""
        data: dict[str, Any] = {}
        for key, value in self.__dict__.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Enum):
                value = value.value
            data[key] = value
        return data


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


# ========================================
# Column expressions for race-free updates
# ========================================


def at_least(column: str, value: int):
    """SET column = max(column, value)."""
    col = getattr(ExamSubmission, column)
    return case((col > value, col), else_=value)


def minus_floored(column: str, amount: int):
    """SET column = max(column - amount, 0); NULL stays NULL."""
    col = getattr(ExamSubmission, column)
    return case((col.is_(None), null()), (col > amount, col - amount), else_=0)


def plus(column: str, amount: int = 1):
    """SET column = column + amount."""
    return getattr(ExamSubmission, column) + amount


class SubmissionRepository:
    """Persistence operations for submissions within one session/transaction."""

    def __init__(self, session: Session):
        self.session = session

    # ========================================
    # Submission rows
    # ========================================

    def create(self, **values: Any) -> SubmissionRecord:
        """
        Insert a submission row and flush.

        Raises:
            sqlalchemy.exc.IntegrityError: another non-terminal submission
                exists for (user_id, test_id)
        """
        row = ExamSubmission(**{k: _plain(v) for k, v in values.items()})
        self.session.add(row)
        self.session.flush()
        return self._to_record(row)

    def get(self, submission_id: str) -> SubmissionRecord | None:
        row = self.session.get(ExamSubmission, submission_id, populate_existing=True)
        return self._to_record(row) if row is not None else None

    def find_active(self, user_id: str, test_id: str) -> SubmissionRecord | None:
        """Non-terminal submission for (user, test), if any."""
        stmt = select(ExamSubmission).where(
            ExamSubmission.user_id == user_id,
            ExamSubmission.test_id == test_id,
            ExamSubmission.status.in_([s.value for s in NON_TERMINAL_STATUSES]),
        )
        row = self.session.execute(stmt).scalars().first()
        return self._to_record(row) if row is not None else None

    def list_for_user(
        self, user_id: str, status: SubmissionStatus | None = None, limit: int = 50
    ) -> list[SubmissionRecord]:
        stmt = select(ExamSubmission).where(ExamSubmission.user_id == user_id)
        if status is not None:
            stmt = stmt.where(ExamSubmission.status == status.value)
        stmt = stmt.order_by(ExamSubmission.started_at.desc()).limit(limit)
        return [self._to_record(row) for row in self.session.execute(stmt).scalars()]

    def find_overdue(self, now: datetime, limit: int = 100) -> list[str]:
        """Ids of in-progress/paused submissions whose server deadline has passed."""
        stmt = (
            select(ExamSubmission.id)
            .where(
                ExamSubmission.status.in_([s.value for s in ACTIVE_STATUSES]),
                ExamSubmission.deadline_at.is_not(None),
                ExamSubmission.deadline_at <= now,
            )
            .order_by(ExamSubmission.deadline_at)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def guarded_update(
        self,
        submission_id: str,
        expected: Iterable[SubmissionStatus],
        **values: Any,
    ) -> bool:
        """
        Update a submission only if its status is one of `expected`.

        Returns:
            True if exactly one row was updated
        """
        expected = [_plain(s) for s in expected]
        stmt = (
            update(ExamSubmission)
            .where(
                ExamSubmission.id == submission_id,
                ExamSubmission.status.in_(expected),
            )
            .values(**{k: _plain(v) for k, v in values.items()})
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        updated = result.rowcount == 1
        if not updated:
            logger.debug("Guarded update missed submission {} (expected {})", submission_id, expected)
        return updated

    def claim(
        self,
        submission_id: str,
        expected: Iterable[SubmissionStatus],
        **values: Any,
    ) -> SubmissionRecord | None:
        """
        Lock a submission for the rest of the transaction and return it fresh.

        Issues a guarded update (a no-op unless `values` are given), so a
        concurrent claim on the same submission blocks until this
        transaction ends and then re-checks the status.

        Returns:
            The row as seen after the lock was taken, or None if its status
            is no longer one of `expected`
        """
        if not self.guarded_update(
            submission_id, expected, status=ExamSubmission.status, **values
        ):
            return None
        return self.get(submission_id)

    def delete_if(self, submission_id: str, expected: Iterable[SubmissionStatus]) -> bool:
        """Delete a submission and its answers only if its status is one of `expected`."""
        stmt = (
            delete(ExamSubmission)
            .where(
                ExamSubmission.id == submission_id,
                ExamSubmission.status.in_([_plain(s) for s in expected]),
            )
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            return False
        # Children normally go with ON DELETE CASCADE; clear any left behind
        self.session.execute(
            delete(SubmissionAnswer).where(SubmissionAnswer.submission_id == submission_id)
        )
        self.session.execute(
            delete(SubmissionSection).where(SubmissionSection.submission_id == submission_id)
        )
        return True

    # ========================================
    # Answers
    # ========================================

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

    def write_answers(
        self, submission_id: str, store: AnswerStore, delta: AnswerDelta, now: datetime
    ) -> int:
        """
        Persist the keys `delta` touched, taking their merged values from `store`.

        `store` must be the submission's answers loaded after claim() with
        `delta` merged in; the rows written are exactly what it holds.

        Returns:
            Number of answer keys written
        """
        insert = self._insert()
        written = 0

        for skill, entry in delta.entries():
            section = store.sections(skill)[entry.section_id]
            for question_id in entry.answers:
                stmt = insert(SubmissionAnswer).values(
                    submission_id=submission_id,
                    skill=skill.value,
                    section_id=entry.section_id,
                    question_id=question_id,
                    value=section.answers[question_id],
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["submission_id", "skill", "section_id", "question_id"],
                    set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
                )
                self.session.execute(stmt)
                written += 1

            stmt = insert(SubmissionSection).values(
                submission_id=submission_id,
                skill=skill.value,
                section_id=entry.section_id,
                time_spent=section.time_spent,
                completed=section.completed,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["submission_id", "skill", "section_id"],
                set_={
                    "time_spent": stmt.excluded.time_spent,
                    "completed": stmt.excluded.completed,
                },
            )
            self.session.execute(stmt)

        return written

    def load_answers(self, submission_id: str) -> AnswerStore:
        answer_rows = self.session.execute(
            select(
                SubmissionAnswer.skill,
                SubmissionAnswer.section_id,
                SubmissionAnswer.question_id,
                SubmissionAnswer.value,
            )
            .where(SubmissionAnswer.submission_id == submission_id)
            .order_by(SubmissionAnswer.id)
        ).all()
        section_rows = self.session.execute(
            select(
                SubmissionSection.skill,
                SubmissionSection.section_id,
                SubmissionSection.time_spent,
                SubmissionSection.completed,
            )
            .where(SubmissionSection.submission_id == submission_id)
            .order_by(SubmissionSection.id)
        ).all()
        return AnswerStore.from_rows(
            [tuple(r) for r in answer_rows], [tuple(r) for r in section_rows]
        )

    def _to_record(self, row: ExamSubmission) -> SubmissionRecord:
        return SubmissionRecord(
            id=row.id,
            test_id=row.test_id,
            user_id=row.user_id,
            status=SubmissionStatus(row.status),
            started_at=row.started_at,
            ended_at=row.ended_at,
            duration_seconds=row.duration_seconds,
            elapsed_seconds=row.elapsed_seconds or 0,
            remaining_seconds=row.remaining_seconds,
            client_elapsed_seconds=row.client_elapsed_seconds or 0,
            paused_at=row.paused_at,
            paused_seconds=row.paused_seconds or 0,
            deadline_at=row.deadline_at,
            current_skill=row.current_skill,
            current_section_index=row.current_section_index or 0,
            current_question_index=row.current_question_index or 0,
            total_questions=row.total_questions or 0,
            scores=dict(row.scores) if row.scores else None,
            results=dict(row.results) if row.results else None,
            needs_manual_review=bool(row.needs_manual_review),
            manual_review_requested_at=row.manual_review_requested_at,
            is_reviewed=bool(row.is_reviewed),
            reviewed_by=row.reviewed_by,
            reviewed_at=row.reviewed_at,
            pause_count=row.pause_count or 0,
            resume_count=row.resume_count or 0,
            tab_switches=row.tab_switches or 0,
            has_technical_issues=bool(row.has_technical_issues),
            warnings=list(row.warnings or []),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
