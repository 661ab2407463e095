"""
Submission Models.

SQLAlchemy models for exam attempts:
- One row per attempt with status, timing, cursor, scores and results
- One row per answered item (last write wins on the natural key)
- One row per section/task/part for time spent and completion
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType

# At most one row per (user, test) may sit in a non-terminal status
_NON_TERMINAL_WHERE = text("status IN ('created', 'in_progress', 'paused')")


class ExamSubmission(Base):
    """
    One candidate's attempt at one test.

    Status changes are only written through status-guarded UPDATEs
    (see SubmissionRepository.guarded_update) so that concurrent requests
    cannot both move the same attempt out of a status.
    """

    __tablename__ = "exam_submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    test_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="created")

    # Timing (server clock is authoritative; client_elapsed_seconds is informational)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column()
    duration_seconds: Mapped[int | None] = mapped_column(Integer)
    elapsed_seconds: Mapped[int] = mapped_column(Integer, default=0)
    remaining_seconds: Mapped[int | None] = mapped_column(Integer)
    client_elapsed_seconds: Mapped[int] = mapped_column(Integer, default=0)
    paused_at: Mapped[datetime | None] = mapped_column()
    paused_seconds: Mapped[int] = mapped_column(Integer, default=0)
    deadline_at: Mapped[datetime | None] = mapped_column()

    # Navigation cursor
    current_skill: Mapped[str | None] = mapped_column(Text)
    current_section_index: Mapped[int] = mapped_column(Integer, default=0)
    current_question_index: Mapped[int] = mapped_column(Integer, default=0)

    # Scoring
    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    scores: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    results: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    needs_manual_review: Mapped[bool] = mapped_column(Boolean, default=False)
    manual_review_requested_at: Mapped[datetime | None] = mapped_column()
    is_reviewed: Mapped[bool] = mapped_column(Boolean, default=False)
    reviewed_by: Mapped[str | None] = mapped_column(Text)
    reviewed_at: Mapped[datetime | None] = mapped_column()

    # Session metadata
    pause_count: Mapped[int] = mapped_column(Integer, default=0)
    resume_count: Mapped[int] = mapped_column(Integer, default=0)
    tab_switches: Mapped[int] = mapped_column(Integer, default=0)
    has_technical_issues: Mapped[bool] = mapped_column(Boolean, default=False)
    warnings: Mapped[list[Any] | None] = mapped_column(JSONType, default=lambda: [])

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    # Relationships
    answers: Mapped[list[SubmissionAnswer]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )
    sections: Mapped[list[SubmissionSection]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index(
            "uq_submission_active_attempt",
            "user_id",
            "test_id",
            unique=True,
            postgresql_where=_NON_TERMINAL_WHERE,
            sqlite_where=_NON_TERMINAL_WHERE,
        ),
        Index("idx_submission_deadline", "status", "deadline_at"),
        Index("idx_submission_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<ExamSubmission {self.id} user={self.user_id} test={self.test_id} status={self.status}>"


class SubmissionAnswer(Base):
    """One stored answer, keyed by (submission, skill, section, question)."""

    __tablename__ = "submission_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("exam_submissions.id", ondelete="CASCADE"), nullable=False
    )
    skill: Mapped[str] = mapped_column(Text, nullable=False)
    section_id: Mapped[str] = mapped_column(Text, nullable=False)
    question_id: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[Any | None] = mapped_column(JSONType)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    submission: Mapped[ExamSubmission] = relationship(back_populates="answers")

    __table_args__ = (
        UniqueConstraint(
            "submission_id", "skill", "section_id", "question_id", name="uq_submission_answer_key"
        ),
    )


class SubmissionSection(Base):
    """Time spent and completion flag for one section/task/part."""

    __tablename__ = "submission_sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("exam_submissions.id", ondelete="CASCADE"), nullable=False
    )
    skill: Mapped[str] = mapped_column(Text, nullable=False)
    section_id: Mapped[str] = mapped_column(Text, nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)

    submission: Mapped[ExamSubmission] = relationship(back_populates="sections")

    __table_args__ = (
        UniqueConstraint("submission_id", "skill", "section_id", name="uq_submission_section_key"),
    )
