"""
Multiple choice evaluators.

Single: the selected option index must equal the correct index.
Multiple: the submitted indices must equal the expected set (order irrelevant,
same size, every submitted index expected).
"""

from typing import Any

from bandexam.content.models import MultiChoiceContent, QuestionType, SingleChoiceContent

from . import register
from .base import MalformedAnswer, as_index


@register(QuestionType.MULTIPLE_CHOICE_SINGLE)
class SingleChoiceEvaluator:
    """Evaluator for single-answer multiple choice."""

    def check(self, content: SingleChoiceContent, answer: Any) -> bool:
        selected = as_index(answer)
        if selected is None:
            raise MalformedAnswer(f"expected an option index, got {answer!r}")
        return selected == content.correct_answer


@register(QuestionType.MULTIPLE_CHOICE_MULTIPLE)
class MultiChoiceEvaluator:
    """Evaluator for multiple-answer multiple choice."""

    def check(self, content: MultiChoiceContent, answer: Any) -> bool:
        if not isinstance(answer, (list, tuple, set)):
            raise MalformedAnswer(f"expected a list of option indices, got {answer!r}")

        selected = [as_index(a) for a in answer]
        if any(s is None for s in selected):
            raise MalformedAnswer(f"non-integer option index in {answer!r}")

        expected = set(content.correct_answers)
        return len(selected) == len(expected) and set(selected) == expected
