"""
Test content models (read-only to the engine).

A test is an ordered tree of sections -> questions. Each question carries a
type tag and a content payload; the payload is parsed into the variant that
belongs to the tag, so evaluators always receive a typed object.

Question Types:
- multiple_choice_single: one option index
- multiple_choice_multiple: unordered set of option indices
- true_false_not_given: one of three canonical labels
- fill_in_blanks / short_answer / sentence_completion / summary_completion:
  free text matched against accepted answers
- matching_headings: paragraph -> heading index pairing
- matching_information: information item -> paragraph pairing

Payloads accept both snake_case and the camelCase keys used by the authoring
tool (correctAnswer, correctAnswers, correctMatching, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel


class Skill(str, Enum):
    """The four assessed competencies."""

    READING = "reading"
    LISTENING = "listening"
    WRITING = "writing"
    SPEAKING = "speaking"


OBJECTIVE_SKILLS = (Skill.READING, Skill.LISTENING)
PRODUCTIVE_SKILLS = (Skill.WRITING, Skill.SPEAKING)


class QuestionType(str, Enum):
    """Supported question type tags."""

    MULTIPLE_CHOICE_SINGLE = "multiple_choice_single"
    MULTIPLE_CHOICE_MULTIPLE = "multiple_choice_multiple"
    TRUE_FALSE_NOT_GIVEN = "true_false_not_given"
    FILL_IN_BLANKS = "fill_in_blanks"
    SHORT_ANSWER = "short_answer"
    SENTENCE_COMPLETION = "sentence_completion"
    SUMMARY_COMPLETION = "summary_completion"
    MATCHING_HEADINGS = "matching_headings"
    MATCHING_INFORMATION = "matching_information"


TFNG_LABELS = ("True", "False", "Not Given")


class _Content(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    explanation: str | None = None

    def expected_answer(self) -> Any:
        """Correct-answer specification as stored in the audit record."""
        raise NotImplementedError


# ========================================
# Content Variants
# ========================================


class SingleChoiceContent(_Content):
    question: str = ""
    options: list[str] = Field(default_factory=list)
    correct_answer: int

    def expected_answer(self) -> int:
        return self.correct_answer


class MultiChoiceContent(_Content):
    question: str = ""
    options: list[str] = Field(default_factory=list)
    number_of_answers: int | None = None
    correct_answers: list[int] = Field(min_length=1)

    def expected_answer(self) -> list[int]:
        return sorted(self.correct_answers)


class TrueFalseNotGivenContent(_Content):
    statement: str = ""
    answer: str

    @field_validator("answer")
    @classmethod
    def canonical_label(cls, v: str) -> str:
        for label in TFNG_LABELS:
            if v.strip().lower() == label.lower():
                return label
        raise ValueError(f"answer must be one of {', '.join(TFNG_LABELS)}")

    def expected_answer(self) -> str:
        return self.answer


class TextAnswerContent(_Content):
    """Fill-in-blank, short answer, sentence and summary completion."""

    prompt: str = Field(
        default="",
        validation_alias=AliasChoices("prompt", "sentence", "question", "summary"),
    )
    correct_answers: list[str] = Field(min_length=1)
    max_words: int | None = None

    def expected_answer(self) -> list[str]:
        return list(self.correct_answers)


class MatchPair(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    paragraph_index: int
    heading_index: int


class MatchingHeadingsContent(_Content):
    headings: list[str] = Field(default_factory=list)
    paragraphs: list[str] = Field(default_factory=list)
    correct_matching: list[MatchPair] = Field(min_length=1)

    def expected_pairs(self) -> dict[str, str]:
        return {str(p.paragraph_index): str(p.heading_index) for p in self.correct_matching}

    def expected_answer(self) -> dict[str, str]:
        return self.expected_pairs()


class MatchingInformationContent(_Content):
    information: list[str] = Field(default_factory=list)
    paragraphs: list[str] = Field(default_factory=list)
    correct_matches: dict[str, str | int] = Field(min_length=1)

    def expected_pairs(self) -> dict[str, str]:
        return {str(k): str(v) for k, v in self.correct_matches.items()}

    def expected_answer(self) -> dict[str, str]:
        return self.expected_pairs()


class UnsupportedContent(_Content):
    """Payload of a question whose type tag has no evaluator."""

    model_config = ConfigDict(extra="allow", frozen=True)

    def expected_answer(self) -> Any:
        return None


QuestionContent = Union[
    SingleChoiceContent,
    MultiChoiceContent,
    TrueFalseNotGivenContent,
    TextAnswerContent,
    MatchingHeadingsContent,
    MatchingInformationContent,
    UnsupportedContent,
]

CONTENT_VARIANTS: dict[QuestionType, type[_Content]] = {
    QuestionType.MULTIPLE_CHOICE_SINGLE: SingleChoiceContent,
    QuestionType.MULTIPLE_CHOICE_MULTIPLE: MultiChoiceContent,
    QuestionType.TRUE_FALSE_NOT_GIVEN: TrueFalseNotGivenContent,
    QuestionType.FILL_IN_BLANKS: TextAnswerContent,
    QuestionType.SHORT_ANSWER: TextAnswerContent,
    QuestionType.SENTENCE_COMPLETION: TextAnswerContent,
    QuestionType.SUMMARY_COMPLETION: TextAnswerContent,
    QuestionType.MATCHING_HEADINGS: MatchingHeadingsContent,
    QuestionType.MATCHING_INFORMATION: MatchingInformationContent,
}


def content_variant_for(type_tag: str) -> type[_Content]:
    """Variant class for a type tag; UnsupportedContent for unknown tags."""
    try:
        return CONTENT_VARIANTS[QuestionType(type_tag)]
    except ValueError:
        return UnsupportedContent


# ========================================
# Test Tree
# ========================================


class _Node(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Question(_Node):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    type: str
    order: int = 0
    points: int = 1
    content: QuestionContent

    @field_validator("content", mode="before")
    @classmethod
    def parse_variant(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, _Content):
            return v
        variant = content_variant_for(info.data.get("type", ""))
        return variant.model_validate(v or {})

    @property
    def is_supported(self) -> bool:
        return not isinstance(self.content, UnsupportedContent)


class Section(_Node):
    """Reading passage or listening recording with its questions."""

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    title: str = ""
    order: int = 0
    passage: str | None = None
    audio_url: str | None = None
    questions: list[Question] = Field(default_factory=list)


class WritingTask(_Node):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    task_number: int = 1
    prompt: str = ""
    min_words: int | None = None


class SpeakingQuestion(_Node):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    question: str = ""


class SpeakingPart(_Node):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    part_number: int = 1
    title: str = ""
    questions: list[SpeakingQuestion] = Field(default_factory=list)


class TestContent(_Node):
    """A published test. The engine never mutates it."""

    __test__ = False  # keep pytest from collecting this class

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    title: str
    duration_minutes: int | None = Field(
        default=None,
        validation_alias=AliasChoices("duration_minutes", "durationMinutes", "duration"),
    )
    allow_pause: bool = True
    status: Literal["active", "draft", "archived"] = "active"
    skills: list[Skill] = Field(default_factory=list)
    reading_sections: list[Section] = Field(default_factory=list)
    listening_sections: list[Section] = Field(default_factory=list)
    writing_tasks: list[WritingTask] = Field(default_factory=list)
    speaking_parts: list[SpeakingPart] = Field(default_factory=list)

    @field_validator("skills", mode="before")
    @classmethod
    def lowercase_skills(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [s.lower() if isinstance(s, str) else s for s in v]
        return v

    @property
    def duration_seconds(self) -> int | None:
        if not self.duration_minutes:
            return None
        return self.duration_minutes * 60

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def sections_for(self, skill: Skill) -> list[Section]:
        """Objective sections for reading/listening, empty for other skills."""
        if skill == Skill.READING:
            return self.reading_sections
        if skill == Skill.LISTENING:
            return self.listening_sections
        return []

    def item_ids(self, skill: Skill) -> dict[str, set[str]]:
        """Answerable item ids per section/task/part for one skill."""
        if skill in OBJECTIVE_SKILLS:
            return {s.id: {q.id for q in s.questions} for s in self.sections_for(skill)}
        if skill == Skill.WRITING:
            return {t.id: {t.id} for t in self.writing_tasks}
        return {p.id: {q.id for q in p.questions} for p in self.speaking_parts}

    def total_items(self) -> int:
        """Questions, writing tasks and speaking prompts across the whole test."""
        return sum(
            len(ids)
            for skill in Skill
            for ids in self.item_ids(skill).values()
        )

    def objective_question_count(self) -> int:
        return sum(len(s.questions) for skill in OBJECTIVE_SKILLS for s in self.sections_for(skill))

    def assessed_productive_skills(self) -> list[Skill]:
        """Writing/speaking skills that have content and need an external band."""
        skills = []
        if self.writing_tasks:
            skills.append(Skill.WRITING)
        if self.speaking_parts:
            skills.append(Skill.SPEAKING)
        return skills

    def first_skill(self) -> Skill | None:
        if self.skills:
            return self.skills[0]
        for skill in Skill:
            if self.item_ids(skill):
                return skill
        return None
