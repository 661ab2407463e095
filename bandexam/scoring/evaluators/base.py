"""
Base protocol and types for question evaluators.
"""

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass
class EvaluationResult:
    """Result of checking one submitted answer."""
    question_id: str
    correct: bool
    user_answer: Any
    correct_answer: Any
    points: int = 0
    warning: str | None = None  # Set when the answer could not be evaluated normally


def is_blank(value: Any) -> bool:
    """True for None, empty/whitespace strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def as_index(value: Any) -> int | None:
    """Coerce an option index; None if the value is not a whole number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


class MalformedAnswer(ValueError):
    """Submitted value has a shape the evaluator cannot interpret."""


class Evaluator(Protocol):
    """Protocol for question type evaluators."""

    def check(self, content: Any, answer: Any) -> bool:
        """Return True if the (non-blank) answer is correct for this content."""
        ...
