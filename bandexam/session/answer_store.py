"""
Answer store: per-key merge of incremental answers.

Answers are keyed by (skill, section id, question id). Merging overwrites a
key's value wholesale (last write wins, no merging inside one answer), so
re-applying a delta is a no-op and deltas touching distinct keys commute.
Section bookkeeping converges the same way: time spent keeps the maximum
reported value, completed stays true once set.

This is the only place merging happens: SessionManager loads the stored
answers, merges the incoming delta here and the repository writes back the
merged values of the keys the delta touched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from bandexam.content.models import Skill
from bandexam.scoring.evaluators.base import is_blank
from bandexam.session.schemas import AnswerDelta


@dataclass
class SectionAnswers:
    """Answers and bookkeeping for one section/task/part."""

    answers: dict[str, Any] = field(default_factory=dict)
    time_spent: int = 0
    completed: bool = False

    def to_dict(self, section_id: str) -> dict[str, Any]:
        return {
            "section_id": section_id,
            "answers": dict(self.answers),
            "time_spent": self.time_spent,
            "completed": self.completed,
        }


class AnswerStore:
    """
    In-memory answer set for one submission.

    Usage:
        store = AnswerStore()
        store.merge(delta)
        store.completion_percentage(test.total_items())
    """

    def __init__(self) -> None:
        self._skills: dict[Skill, dict[str, SectionAnswers]] = {skill: {} for skill in Skill}

    @classmethod
    def from_rows(
        cls,
        answer_rows: Iterable[tuple[str, str, str, Any]] = (),
        section_rows: Iterable[tuple[str, str, int, bool]] = (),
    ) -> "AnswerStore":
        """
        Rebuild a store from persisted rows.

        Args:
            answer_rows: (skill, section_id, question_id, value)
            section_rows: (skill, section_id, time_spent, completed)
        """
        store = cls()
        for skill, section_id, time_spent, completed in section_rows:
            section = store._section(Skill(skill), section_id)
            section.time_spent = time_spent or 0
            section.completed = bool(completed)
        for skill, section_id, question_id, value in answer_rows:
            store._section(Skill(skill), section_id).answers[question_id] = value
        return store

    def _section(self, skill: Skill, section_id: str) -> SectionAnswers:
        return self._skills[skill].setdefault(section_id, SectionAnswers())

    def merge(self, delta: AnswerDelta) -> None:
        """Apply a delta. Idempotent; commutative across distinct keys."""
        for skill, entry in delta.entries():
            section = self._section(skill, entry.section_id)
            for question_id, value in entry.answers.items():
                section.answers[question_id] = value
            if entry.time_spent is not None:
                section.time_spent = max(section.time_spent, entry.time_spent)
            if entry.completed:
                section.completed = True

    def get(self, skill: Skill, section_id: str, question_id: str) -> Any:
        section = self._skills[skill].get(section_id)
        if section is None:
            return None
        return section.answers.get(question_id)

    def sections(self, skill: Skill) -> dict[str, SectionAnswers]:
        return self._skills[skill]

    def iter_answers(self) -> Iterator[tuple[Skill, str, str, Any]]:
        for skill, sections in self._skills.items():
            for section_id, section in sections.items():
                for question_id, value in section.answers.items():
                    yield skill, section_id, question_id, value

    def answered_count(self) -> int:
        """Number of keys holding a non-null, non-empty value."""
        return sum(1 for *_, value in self.iter_answers() if not is_blank(value))

    def completion_percentage(self, total_questions: int) -> int:
        """Answered / total as a whole percentage (0 when the test has no items)."""
        if total_questions <= 0:
            return 0
        return min(100, round(self.answered_count() / total_questions * 100))

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            skill.value: [s.to_dict(section_id) for section_id, s in sections.items()]
            for skill, sections in self._skills.items()
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnswerStore):
            return NotImplemented
        return self.to_dict() == other.to_dict()
