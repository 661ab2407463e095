"""
Matching evaluators (headings and information).

The submitted pairing must equal the expected pairing item for item. Accepted
answer shapes:
- {"0": 2, "1": 0}                                   item -> choice
- [{"paragraphIndex": 0, "headingIndex": 2}, ...]    explicit pairs
- [[0, 2], [1, 0]]                                   pair tuples
- [2, 0]                                             choice per item, by position
"""

from typing import Any

from bandexam.content.models import (
    MatchingHeadingsContent,
    MatchingInformationContent,
    QuestionType,
)

from . import register
from .base import MalformedAnswer, as_index

_ITEM_KEYS = ("paragraphIndex", "paragraph_index", "item", "itemIndex")
_CHOICE_KEYS = ("headingIndex", "heading_index", "choice", "paragraph")


def _token(value: Any) -> str:
    index = as_index(value)
    if index is not None:
        return str(index)
    if isinstance(value, str):
        return value.strip()
    raise MalformedAnswer(f"unusable pairing value {value!r}")


def _pick(entry: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in entry:
            return entry[key]
    raise MalformedAnswer(f"pair {entry!r} is missing one of {keys}")


def to_pairs(answer: Any) -> dict[str, str]:
    """Normalize any accepted answer shape to {item: choice} string tokens."""
    if isinstance(answer, dict):
        return {_token(k): _token(v) for k, v in answer.items() if v is not None}

    if not isinstance(answer, (list, tuple)):
        raise MalformedAnswer(f"expected a pairing, got {answer!r}")

    pairs: dict[str, str] = {}
    for position, entry in enumerate(answer):
        if entry is None:
            continue
        if isinstance(entry, dict):
            pairs[_token(_pick(entry, _ITEM_KEYS))] = _token(_pick(entry, _CHOICE_KEYS))
        elif isinstance(entry, (list, tuple)):
            if len(entry) != 2:
                raise MalformedAnswer(f"pair {entry!r} must have two elements")
            pairs[_token(entry[0])] = _token(entry[1])
        else:
            pairs[str(position)] = _token(entry)
    return pairs


@register(QuestionType.MATCHING_HEADINGS, QuestionType.MATCHING_INFORMATION)
class MatchingEvaluator:
    """Evaluator for exact item-by-item pairings."""

    def check(
        self,
        content: MatchingHeadingsContent | MatchingInformationContent,
        answer: Any,
    ) -> bool:
        expected = {_token(k): _token(v) for k, v in content.expected_pairs().items()}
        return to_pairs(answer) == expected
