"""
Error taxonomy for the session engine.

Every error carries a human-readable message, an optional field path (so the
client can render a field-level message) and a free-form context dict.
"""

from __future__ import annotations

from typing import Any


class ExamEngineError(Exception):
    """Base class for all errors raised by the engine."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error bodies."""
        body: dict[str, Any] = {
            "error": type(self).__name__,
            "message": self.message,
        }
        if self.field:
            body["field"] = self.field
        if self.context:
            body["context"] = self.context
        return body


class NotFoundError(ExamEngineError):
    """No matching (or no active) submission or test for the operation."""


class ConflictError(ExamEngineError):
    """Duplicate active session, repeated review request, or a lost race."""


class InvalidStateTransition(ExamEngineError):
    """Operation attempted from a status that does not permit it."""

    def __init__(self, current: str, event: str, message: str | None = None):
        super().__init__(
            message or f"Cannot {event} a submission that is {current}",
            context={"current_status": current, "event": event},
        )
        self.current = current
        self.event = event


class ValidationError(ExamEngineError):
    """Malformed answer payload or reference to unknown content."""


class ScoringError(ExamEngineError):
    """Test content unavailable or inconsistent with stored answers at scoring time."""
