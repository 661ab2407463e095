"""
Unit tests for the answer store merge semantics.
"""

import pytest

from bandexam.content.models import Skill
from bandexam.session.answer_store import AnswerStore
from bandexam.session.schemas import parse_answer_delta


def delta(payload):
    return parse_answer_delta(payload)


class TestMerge:
    """Test per-key merge."""

    def test_merge_is_idempotent(self):
        """Applying the same delta twice equals applying it once."""
        d = delta({"reading": [{"sectionId": "r1", "answers": {"q1": 1, "q2": [0, 3]}, "timeSpent": 40}]})
        once = AnswerStore()
        once.merge(d)
        twice = AnswerStore()
        twice.merge(d)
        twice.merge(d)

        assert once == twice

    def test_distinct_keys_commute(self):
        a = delta({"reading": [{"sectionId": "r1", "answers": {"q1": 1}}]})
        b = delta({"reading": [{"sectionId": "r1", "answers": {"q2": 2}}]})

        ab = AnswerStore()
        ab.merge(a)
        ab.merge(b)
        ba = AnswerStore()
        ba.merge(b)
        ba.merge(a)

        assert ab == ba
        assert ab.get(Skill.READING, "r1", "q2") == 2

    def test_last_write_wins_whole_value(self):
        """A later write replaces the earlier value; lists are not merged."""
        store = AnswerStore()
        store.merge(delta({"reading": [{"sectionId": "r1", "answers": {"q1": [0, 1]}}]}))
        store.merge(delta({"reading": [{"sectionId": "r1", "answers": {"q1": [2]}}]}))

        assert store.get(Skill.READING, "r1", "q1") == [2]

    def test_time_spent_keeps_maximum(self):
        store = AnswerStore()
        store.merge(delta({"listening": [{"sectionId": "l1", "timeSpent": 90}]}))
        store.merge(delta({"listening": [{"sectionId": "l1", "timeSpent": 30}]}))

        assert store.sections(Skill.LISTENING)["l1"].time_spent == 90

    def test_completed_is_sticky(self):
        store = AnswerStore()
        store.merge(delta({"reading": [{"sectionId": "r1", "completed": True}]}))
        store.merge(delta({"reading": [{"sectionId": "r1", "completed": False}]}))

        assert store.sections(Skill.READING)["r1"].completed is True

    def test_writing_keyed_by_task(self):
        store = AnswerStore()
        store.merge(delta({"writing": [{"taskId": "w1", "answers": {"w1": "My essay"}}]}))

        assert store.get(Skill.WRITING, "w1", "w1") == "My essay"

    def test_missing_key_reads_none(self):
        assert AnswerStore().get(Skill.SPEAKING, "s1", "s1q1") is None


class TestCompletion:
    """Test completion percentage."""

    @pytest.fixture
    def store(self):
        store = AnswerStore()
        store.merge(
            delta(
                {
                    "reading": [
                        {"sectionId": "r1", "answers": {"q1": 1, "q2": "", "q3": [], "q4": None, "q5": {}}}
                    ],
                    "writing": [{"taskId": "w1", "answers": {"w1": "essay"}}],
                }
            )
        )
        return store

    def test_blank_values_do_not_count(self, store):
        assert store.answered_count() == 2

    def test_percentage(self, store):
        assert store.completion_percentage(8) == 25

    def test_capped_at_hundred(self, store):
        assert store.completion_percentage(1) == 100

    def test_no_items(self, store):
        assert store.completion_percentage(0) == 0


class TestFromRows:
    def test_round_trip_from_rows(self):
        store = AnswerStore.from_rows(
            answer_rows=[("reading", "r1", "q1", 2), ("speaking", "s1", "s1q1", "rec-1.webm")],
            section_rows=[("reading", "r1", 120, True)],
        )

        assert store.get(Skill.READING, "r1", "q1") == 2
        assert store.get(Skill.SPEAKING, "s1", "s1q1") == "rec-1.webm"
        assert store.to_dict()["reading"] == [
            {"section_id": "r1", "answers": {"q1": 2}, "time_spent": 120, "completed": True}
        ]
