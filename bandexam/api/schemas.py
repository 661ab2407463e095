"""
Request/response models shared by the API routers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from bandexam.core.states import SubmissionStatus


class SubmissionResponse(BaseModel):
    """Public view of a submission."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    test_id: str
    user_id: str
    status: SubmissionStatus
    started_at: datetime
    ended_at: datetime | None = None
    elapsed_seconds: int = 0
    remaining_seconds: int | None = None
    paused_seconds: int = 0
    current_skill: str | None = None
    current_section_index: int = 0
    current_question_index: int = 0
    total_questions: int = 0
    scores: dict[str, Any] | None = None
    results: dict[str, Any] | None = None
    needs_manual_review: bool = False
    is_reviewed: bool = False
    has_technical_issues: bool = False
    pause_count: int = 0
    resume_count: int = 0
    tab_switches: int = 0
    warnings: list[Any] = Field(default_factory=list)


class SubmissionListResponse(BaseModel):
    submissions: list[SubmissionResponse]
    count: int


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StartRequest(_Request):
    test_id: str = Field(validation_alias=AliasChoices("test_id", "testId"), min_length=1)


class ProgressRequest(_Request):
    """Incremental answers plus optional cursor and client elapsed time."""

    answers: dict[str, Any] | None = None
    cursor: dict[str, Any] | None = None
    elapsed_delta: int | None = Field(
        default=None,
        validation_alias=AliasChoices("elapsed_delta", "elapsedDelta", "timeSpent"),
    )


class ProgressResponse(BaseModel):
    submission: SubmissionResponse
    completion_percentage: int


class SubmitRequest(_Request):
    answers: dict[str, Any] | None = None


class IssueReport(_Request):
    issue_type: str = Field(validation_alias=AliasChoices("issue_type", "issueType", "type"))
    description: str = ""
    severity: str = "medium"


class ManualScoreRequest(_Request):
    skill: str
    score: float
    reviewer: str | None = None


class SweepResponse(BaseModel):
    expired: list[str]
    count: int
