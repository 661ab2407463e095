"""
Submission router.

Candidate-facing endpoints for one exam attempt: start, progress saves,
pause/resume, submit, abandon, delete, results and annotations. Every
endpoint acts on behalf of the user named in the X-User-Id header.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response, status
from loguru import logger

from bandexam.api.dependencies import current_user_id, get_session_manager
from bandexam.api.schemas import (
    IssueReport,
    ProgressRequest,
    ProgressResponse,
    StartRequest,
    SubmissionListResponse,
    SubmissionResponse,
    SubmitRequest,
)
from bandexam.core.states import SubmissionStatus
from bandexam.db.repository import SubmissionRecord
from bandexam.session.manager import SessionManager

router = APIRouter()


def _to_response(record: SubmissionRecord) -> SubmissionResponse:
    return SubmissionResponse.model_validate(record, from_attributes=True)


# ========================================
# Lifecycle Endpoints
# ========================================


@router.post(
    "",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a test attempt",
)
def start_submission(
    request: StartRequest,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    """
    Start a new attempt at a test.

    Fails with 409 if the user already has an unfinished attempt at the test.
    """
    return _to_response(manager.start(request.test_id, user_id))


@router.put(
    "/{submission_id}/progress",
    response_model=ProgressResponse,
    summary="Save answers and progress",
)
def save_progress(
    submission_id: str,
    request: ProgressRequest,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> ProgressResponse:
    result = manager.save_progress(
        submission_id,
        user_id,
        request.answers,
        cursor=request.cursor,
        elapsed_delta=request.elapsed_delta,
    )
    return ProgressResponse(
        submission=_to_response(result.submission),
        completion_percentage=result.completion_percentage,
    )


@router.post("/{submission_id}/pause", response_model=SubmissionResponse, summary="Pause attempt")
def pause_submission(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    return _to_response(manager.pause(submission_id, user_id))


@router.post("/{submission_id}/resume", response_model=SubmissionResponse, summary="Resume attempt")
def resume_submission(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    return _to_response(manager.resume(submission_id, user_id))


@router.post("/{submission_id}/submit", response_model=SubmissionResponse, summary="Submit for scoring")
def submit_submission(
    submission_id: str,
    request: SubmitRequest | None = None,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    """
    Submit the attempt. Trailing answers in the body are merged first.

    A second submit fails with 409.
    """
    answers = request.answers if request is not None else None
    return _to_response(manager.submit(submission_id, user_id, answers))


@router.post("/{submission_id}/abandon", response_model=SubmissionResponse, summary="Abandon attempt")
def abandon_submission(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    return _to_response(manager.abandon(submission_id, user_id))


@router.delete(
    "/{submission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an unfinished attempt",
)
def delete_submission(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> Response:
    manager.delete(submission_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========================================
# Read Endpoints
# ========================================


@router.get("", response_model=SubmissionListResponse, summary="List own submissions")
def list_submissions(
    status_filter: SubmissionStatus | None = None,
    limit: int = 50,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionListResponse:
    records = manager.list_submissions(user_id, status_filter, limit)
    return SubmissionListResponse(
        submissions=[_to_response(r) for r in records],
        count=len(records),
    )


@router.get("/{submission_id}", response_model=SubmissionResponse, summary="Get submission")
def get_submission(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    return _to_response(manager.get(submission_id, user_id))


@router.get("/{submission_id}/results", summary="Get scored results")
def get_results(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """Scores, per-question analysis and correct answers (404 until scored)."""
    return manager.get_results(submission_id, user_id)


# ========================================
# Review & Annotation Endpoints
# ========================================


@router.post(
    "/{submission_id}/review-request",
    response_model=SubmissionResponse,
    summary="Request manual review",
)
def request_manual_review(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    return _to_response(manager.request_manual_review(submission_id, user_id))


@router.post("/{submission_id}/issues", response_model=SubmissionResponse, summary="Report an issue")
def report_issue(
    submission_id: str,
    report: IssueReport,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    logger.info("Issue reported on {} ({}, {})", submission_id, report.issue_type, report.severity)
    record = manager.report_issue(
        submission_id,
        user_id,
        report.issue_type,
        report.description,
        report.severity,
    )
    return _to_response(record)


@router.post(
    "/{submission_id}/tab-switch",
    response_model=SubmissionResponse,
    summary="Record a tab switch",
)
def record_tab_switch(
    submission_id: str,
    user_id: str = Depends(current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    return _to_response(manager.record_tab_switch(submission_id, user_id))
