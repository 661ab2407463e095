"""
Persistence layer: ORM models, engine/session handling and the submission repository.
"""

from bandexam.db.database import (
    create_db_engine,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_db,
    session_scope,
)
from bandexam.db.models import Base, ExamSubmission, SubmissionAnswer, SubmissionSection
from bandexam.db.repository import SubmissionRecord, SubmissionRepository

__all__ = [
    "Base",
    "ExamSubmission",
    "SubmissionAnswer",
    "SubmissionSection",
    "SubmissionRecord",
    "SubmissionRepository",
    "create_db_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "init_db",
    "session_scope",
]
