"""
True / False / Not Given evaluator.

The submitted label must be one of the three canonical labels (any case) and
match the expected label case-insensitively.
"""

from typing import Any

from bandexam.content.models import TFNG_LABELS, QuestionType, TrueFalseNotGivenContent

from . import register
from .base import MalformedAnswer

_CANONICAL = {label.lower() for label in TFNG_LABELS}


@register(QuestionType.TRUE_FALSE_NOT_GIVEN)
class TrueFalseNotGivenEvaluator:
    """Evaluator for true/false/not-given statements."""

    def check(self, content: TrueFalseNotGivenContent, answer: Any) -> bool:
        if not isinstance(answer, str):
            raise MalformedAnswer(f"expected a label string, got {answer!r}")

        submitted = answer.lower()
        if submitted not in _CANONICAL:
            return False
        return submitted == content.answer.lower()
