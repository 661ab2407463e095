"""
Free-text completion evaluator.

Used by fill-in-blank, short answer, sentence completion and summary
completion. The answer is trimmed and lower-cased, then compared against
every accepted answer normalized the same way.
"""

from typing import Any

from bandexam.content.models import QuestionType, TextAnswerContent

from . import register
from .base import MalformedAnswer


def normalize(text: str) -> str:
    return text.strip().lower()


@register(
    QuestionType.FILL_IN_BLANKS,
    QuestionType.SHORT_ANSWER,
    QuestionType.SENTENCE_COMPLETION,
    QuestionType.SUMMARY_COMPLETION,
)
class TextMatchEvaluator:
    """Evaluator for accepted-answer-list questions."""

    def check(self, content: TextAnswerContent, answer: Any) -> bool:
        if isinstance(answer, bool) or not isinstance(answer, (str, int, float)):
            raise MalformedAnswer(f"expected text, got {answer!r}")

        submitted = normalize(str(answer))
        return any(normalize(accepted) == submitted for accepted in content.correct_answers)
