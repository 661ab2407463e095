# SQLAlchemy models
from .base import Base, JSONType
from .submission import ExamSubmission, SubmissionAnswer, SubmissionSection

__all__ = [
    "Base",
    "JSONType",
    "ExamSubmission",
    "SubmissionAnswer",
    "SubmissionSection",
]
