"""
Unit tests for inbound payload validation and the error taxonomy.
"""

import pytest

from bandexam.content.models import Skill
from bandexam.core.exceptions import InvalidStateTransition, NotFoundError, ValidationError
from bandexam.session.schemas import AnswerDelta, parse_answer_delta, parse_cursor


class TestAnswerDelta:
    def test_none_is_empty(self):
        assert parse_answer_delta(None).is_empty()

    def test_aliases(self):
        delta = parse_answer_delta(
            {
                "reading": [{"sectionId": "r1", "answers": {"q1": 1}, "timeSpent": 10}],
                "speaking": [{"partId": "s1", "answers": {"s1q1": "rec.webm"}}],
            }
        )
        entries = list(delta.entries())

        assert [skill for skill, _ in entries] == [Skill.READING, Skill.SPEAKING]
        assert entries[0][1].time_spent == 10
        assert entries[1][1].section_id == "s1"

    def test_passes_through_parsed_delta(self):
        delta = AnswerDelta()
        assert parse_answer_delta(delta) is delta

    def test_unknown_skill_rejected_with_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_answer_delta({"grammar": []})
        assert exc_info.value.field == "grammar"

    def test_negative_time_spent_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_answer_delta({"reading": [{"sectionId": "r1", "timeSpent": -5}]})
        assert exc_info.value.field.startswith("reading.0.")

    def test_missing_section_id_rejected(self):
        with pytest.raises(ValidationError):
            parse_answer_delta({"reading": [{"answers": {"q1": 1}}]})

    def test_answers_must_be_a_map(self):
        with pytest.raises(ValidationError):
            parse_answer_delta({"reading": [{"sectionId": "r1", "answers": [1, 2]}]})


class TestCursor:
    def test_camel_case_cursor(self):
        cursor = parse_cursor({"skill": "listening", "sectionIndex": 2, "questionIndex": 4})
        assert cursor.skill == Skill.LISTENING
        assert cursor.section_index == 2
        assert cursor.question_index == 4

    def test_none(self):
        assert parse_cursor(None) is None

    def test_bad_skill(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_cursor({"skill": "grammar"})
        assert exc_info.value.field.startswith("cursor.")


class TestErrors:
    def test_to_dict(self):
        error = ValidationError("bad", field="reading.0", context={"n": 1})
        assert error.to_dict() == {
            "error": "ValidationError",
            "message": "bad",
            "field": "reading.0",
            "context": {"n": 1},
        }

    def test_minimal_to_dict(self):
        assert NotFoundError("missing").to_dict() == {"error": "NotFoundError", "message": "missing"}

    def test_invalid_transition_context(self):
        error = InvalidStateTransition("completed", "submit")
        assert error.message == "Cannot submit a submission that is completed"
        assert error.context == {"current_status": "completed", "event": "submit"}
