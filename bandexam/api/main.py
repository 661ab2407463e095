"""
FastAPI application for the band exam session engine.

Provides REST API for:
- Starting, saving, pausing, resuming and submitting exam attempts
- Results with per-question analysis
- Manual review requests and reviewer score callbacks
- Triggering the expiry sweep
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from bandexam import __version__
from bandexam.api.dependencies import get_session_manager
from bandexam.core.clock import utcnow
from bandexam.core.exceptions import (
    ConflictError,
    ExamEngineError,
    InvalidStateTransition,
    NotFoundError,
    ScoringError,
    ValidationError,
)
from bandexam.core.log_setup import configure_logging
from bandexam.db.database import get_engine, init_db
from bandexam.session.sweeper import ExpirySweeper
from config import get_settings

settings = get_settings()

ERROR_STATUS_CODES: dict[type[ExamEngineError], int] = {
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStateTransition: 409,
    ValidationError: 422,
    ScoringError: 503,
}


def status_code_for(exc: ExamEngineError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 500


def _check_database_health() -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging(settings.log_level, settings.log_file)
    logger.info("Starting band exam session service...")
    init_db()

    sweeper = ExpirySweeper(
        get_session_manager(),
        interval_seconds=settings.expiry_sweep_interval_seconds,
    )
    if settings.expiry_sweep_interval_seconds > 0:
        sweeper.start()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info("Shutting down band exam session service...")
    sweeper.stop()


app = FastAPI(
    title="Band Exam Session Engine",
    description="""
    Exam session lifecycle and answer scoring for four-skill band exams.

    ## Lifecycle

    ```
    created -> in_progress <-> paused
                    |
                    +-> completed (submit)
                    +-> expired   (deadline passed, expiry sweep)
                    +-> abandoned (user gives up)
    ```

    Reading and listening are scored on submit; writing and speaking bands
    arrive from the review collaborator.
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExamEngineError)
async def engine_error_handler(request: Request, exc: ExamEngineError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.warning("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "bandexam-engine",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    db_status, db_error = _check_database_health()

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": utcnow().isoformat(),
        "components": {"database": db_status},
        "config": settings.get_session_config(),
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


# ========================================
# Import and mount routers
# ========================================

from bandexam.api.routers import review_router, submission_router

app.include_router(submission_router.router, prefix="/api/submissions", tags=["Submissions"])
app.include_router(review_router.router, prefix="/api/review", tags=["Review"])
