"""
Question type evaluators.

Each question type tag has an evaluator registered here. Evaluators are pure:
(question content, submitted answer) -> correct/incorrect. The module-level
evaluate() applies the shared policy:
- blank answers (None, "", [], {}) are incorrect and never reach an evaluator
- unknown type tags are incorrect with a logged warning
- malformed answers are incorrect with a logged warning
"""

from typing import TYPE_CHECKING, Any

from loguru import logger

from bandexam.content.models import Question, QuestionType, UnsupportedContent

from .base import EvaluationResult, MalformedAnswer, is_blank

if TYPE_CHECKING:
    from .base import Evaluator


# Evaluator registry - populated by @register decorator
EVALUATORS: dict[QuestionType, "Evaluator"] = {}


def register(*question_types: QuestionType):
    """Decorator to register an evaluator for one or more type tags."""
    def decorator(cls):
        instance = cls()
        for question_type in question_types:
            EVALUATORS[question_type] = instance
        return cls
    return decorator


def get_evaluator(question_type: str | QuestionType) -> "Evaluator | None":
    """Get the evaluator for a question type."""
    if isinstance(question_type, str):
        try:
            question_type = QuestionType(question_type.lower())
        except ValueError:
            return None
    return EVALUATORS.get(question_type)


def evaluate(question: Question, answer: Any) -> EvaluationResult:
    """
    Evaluate one submitted answer against a question. Never raises.

    Args:
        question: Question with its typed content
        answer: Raw submitted value (shape depends on the question type)

    Returns:
        EvaluationResult with points = question.points when correct
    """
    result = EvaluationResult(
        question_id=question.id,
        correct=False,
        user_answer=answer,
        correct_answer=question.content.expected_answer(),
    )

    if is_blank(answer):
        return result

    evaluator = get_evaluator(question.type)
    if evaluator is None or isinstance(question.content, UnsupportedContent):
        result.warning = f"unsupported question type '{question.type}'"
        logger.warning("Evaluator: {} for question {}", result.warning, question.id)
        return result

    try:
        result.correct = bool(evaluator.check(question.content, answer))
    except (MalformedAnswer, TypeError, ValueError, AttributeError) as e:
        result.warning = f"malformed answer for {question.type}: {e}"
        logger.warning("Evaluator: {} (question {})", result.warning, question.id)
        return result

    if result.correct:
        result.points = question.points
    return result


# Import evaluators to trigger registration
from . import choice
from . import true_false
from . import text_match
from . import matching

__all__ = [
    "EVALUATORS",
    "EvaluationResult",
    "evaluate",
    "get_evaluator",
    "register",
]
