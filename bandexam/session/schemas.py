"""
Inbound payload shapes for progress events.

The answer delta mirrors the stored answer layout: one list of entries per
skill, each entry keyed by its section/task/part id and carrying a
question id -> value map.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from bandexam.content.models import Skill
from bandexam.core.exceptions import ValidationError


class SectionAnswerDelta(BaseModel):
    """Answers for one section (reading/listening), task (writing) or part (speaking)."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    section_id: str = Field(
        validation_alias=AliasChoices("section_id", "sectionId", "task_id", "taskId", "part_id", "partId"),
        min_length=1,
    )
    answers: dict[str, Any] = Field(default_factory=dict)
    time_spent: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("time_spent", "timeSpent"),
    )
    completed: bool | None = None


class AnswerDelta(BaseModel):
    """Incremental answers grouped by skill."""

    model_config = ConfigDict(extra="forbid")

    reading: list[SectionAnswerDelta] = Field(default_factory=list)
    listening: list[SectionAnswerDelta] = Field(default_factory=list)
    writing: list[SectionAnswerDelta] = Field(default_factory=list)
    speaking: list[SectionAnswerDelta] = Field(default_factory=list)

    def entries(self) -> Iterator[tuple[Skill, SectionAnswerDelta]]:
        for skill in Skill:
            for entry in getattr(self, skill.value):
                yield skill, entry

    def is_empty(self) -> bool:
        return not any(True for _ in self.entries())


class Cursor(BaseModel):
    """Navigation bookmark; never used for scoring."""

    model_config = ConfigDict(populate_by_name=True)

    skill: Skill | None = None
    section_index: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("section_index", "sectionIndex")
    )
    question_index: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("question_index", "questionIndex")
    )


def _field_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def parse_answer_delta(payload: AnswerDelta | Mapping[str, Any] | None) -> AnswerDelta:
    """Validate a raw payload, raising the engine's ValidationError with a field path."""
    if payload is None:
        return AnswerDelta()
    if isinstance(payload, AnswerDelta):
        return payload
    try:
        return AnswerDelta.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        raise ValidationError(
            f"Malformed answer payload: {first['msg']}",
            field=_field_path(first["loc"]),
            context={"errors": len(e.errors())},
        ) from e


def parse_cursor(payload: Cursor | Mapping[str, Any] | None) -> Cursor | None:
    if payload is None or isinstance(payload, Cursor):
        return payload
    try:
        return Cursor.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        raise ValidationError(
            f"Malformed cursor: {first['msg']}",
            field="cursor." + _field_path(first["loc"]),
        ) from e
