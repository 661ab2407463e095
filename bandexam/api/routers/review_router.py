"""
Review router.

System-facing endpoints: the review collaborator posts writing/speaking
bands back here, and an external scheduler may trigger the expiry sweep.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from loguru import logger

from bandexam.api.dependencies import get_session_manager
from bandexam.api.schemas import ManualScoreRequest, SubmissionResponse, SweepResponse
from bandexam.session.manager import SessionManager

router = APIRouter()


@router.post(
    "/submissions/{submission_id}/scores",
    response_model=SubmissionResponse,
    summary="Apply a manual band score",
)
def apply_manual_score(
    submission_id: str,
    request: ManualScoreRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SubmissionResponse:
    """
    Record a writing or speaking band from a reviewer.

    The overall band is recomputed from all present skill bands.
    """
    record = manager.apply_manual_score(
        submission_id, request.skill, request.score, reviewer=request.reviewer
    )
    return SubmissionResponse.model_validate(record, from_attributes=True)


@router.post("/expire-overdue", response_model=SweepResponse, summary="Run the expiry sweep once")
def expire_overdue(
    limit: int = 100,
    manager: SessionManager = Depends(get_session_manager),
) -> SweepResponse:
    logger.info("Expiry sweep triggered via API (limit={})", limit)
    expired = manager.expire_overdue(limit=limit)
    return SweepResponse(expired=expired, count=len(expired))
