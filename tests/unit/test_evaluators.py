"""
Unit tests for question type evaluators.

Tests evaluate() policy (blank, unsupported, malformed) and each type's rule.
"""

import pytest

from bandexam.content.models import Question, QuestionType
from bandexam.scoring.evaluators import EVALUATORS, evaluate, get_evaluator
from bandexam.scoring.evaluators.matching import to_pairs


def make_question(type_tag: str, content: dict, points: int = 1) -> Question:
    return Question.model_validate(
        {"_id": "q1", "type": type_tag, "points": points, "content": content}
    )


class TestEvaluatorRegistry:
    """Test the evaluator registry."""

    def test_all_types_registered(self):
        """Every question type tag should have an evaluator."""
        assert set(EVALUATORS) == set(QuestionType)

    def test_get_evaluator_by_string(self):
        assert get_evaluator("short_answer") is not None

    def test_get_evaluator_is_case_insensitive(self):
        assert get_evaluator("Matching_Headings") is get_evaluator(QuestionType.MATCHING_HEADINGS)

    def test_get_evaluator_invalid_type(self):
        """Should return None for unknown tags."""
        assert get_evaluator("diagram_labelling") is None


class TestBlankAndUnsupportedPolicy:
    """Shared policy applied before any type rule."""

    @pytest.fixture
    def question(self):
        return make_question("multiple_choice_single", {"options": ["a", "b"], "correctAnswer": 1})

    @pytest.mark.parametrize("blank", [None, "", "   ", [], {}])
    def test_blank_answer_is_incorrect(self, question, blank):
        """Null, empty and whitespace answers are incorrect without a warning."""
        result = evaluate(question, blank)
        assert result.correct is False
        assert result.points == 0
        assert result.warning is None

    def test_unknown_type_is_incorrect_with_warning(self):
        """An unknown type tag degrades to incorrect instead of failing."""
        question = make_question("diagram_labelling", {"labels": ["x"]})
        assert not question.is_supported

        result = evaluate(question, "x")

        assert result.correct is False
        assert "unsupported" in result.warning
        assert result.correct_answer is None

    def test_malformed_answer_is_incorrect_with_warning(self, question):
        """A dict where an index is expected never raises."""
        result = evaluate(question, {"choice": 1})
        assert result.correct is False
        assert "malformed" in result.warning

    def test_points_awarded_when_correct(self):
        question = make_question(
            "multiple_choice_single", {"options": ["a", "b"], "correctAnswer": 0}, points=2
        )
        result = evaluate(question, 0)
        assert result.correct is True
        assert result.points == 2


class TestSingleChoice:
    """Test single-answer multiple choice."""

    @pytest.fixture
    def question(self):
        return make_question(
            "multiple_choice_single",
            {"question": "Pick one", "options": ["a", "b", "c"], "correctAnswer": 1},
        )

    def test_correct_index(self, question):
        """correctAnswer=1, submitted 1 -> correct."""
        assert evaluate(question, 1).correct is True

    def test_null_answer(self, question):
        """correctAnswer=1, submitted null -> incorrect."""
        assert evaluate(question, None).correct is False

    def test_wrong_index(self, question):
        assert evaluate(question, 2).correct is False

    def test_digit_string_accepted(self, question):
        assert evaluate(question, "1").correct is True

    def test_boolean_is_malformed(self, question):
        result = evaluate(question, True)
        assert result.correct is False
        assert result.warning is not None

    def test_audit_carries_expected_answer(self, question):
        result = evaluate(question, 0)
        assert result.user_answer == 0
        assert result.correct_answer == 1


class TestMultiChoice:
    """Test multiple-answer multiple choice."""

    @pytest.fixture
    def question(self):
        return make_question(
            "multiple_choice_multiple",
            {"options": ["a", "b", "c", "d", "e"], "correctAnswers": [3, 0]},
        )

    def test_same_set_any_order(self, question):
        assert evaluate(question, [0, 3]).correct is True
        assert evaluate(question, [3, 0]).correct is True

    def test_subset_is_incorrect(self, question):
        assert evaluate(question, [0]).correct is False

    def test_superset_is_incorrect(self, question):
        assert evaluate(question, [0, 3, 4]).correct is False

    def test_duplicate_index_is_incorrect(self, question):
        """[0, 0] has the wrong size even though every index is expected."""
        assert evaluate(question, [0, 0]).correct is False

    def test_scalar_is_malformed(self, question):
        result = evaluate(question, 3)
        assert result.correct is False
        assert result.warning is not None

    def test_expected_answer_is_sorted(self, question):
        assert evaluate(question, [1]).correct_answer == [0, 3]


class TestTrueFalseNotGiven:
    """Test true/false/not-given statements."""

    @pytest.fixture
    def question(self):
        return make_question("true_false_not_given", {"statement": "s", "answer": "not given"})

    def test_content_label_is_canonicalized(self, question):
        assert question.content.answer == "Not Given"

    @pytest.mark.parametrize("answer", ["Not Given", "not given", "NOT GIVEN"])
    def test_case_insensitive_match(self, question, answer):
        assert evaluate(question, answer).correct is True

    def test_other_label_is_incorrect(self, question):
        assert evaluate(question, "False").correct is False

    def test_non_label_is_incorrect(self, question):
        assert evaluate(question, "maybe").correct is False

    def test_padded_label_is_not_a_label(self, question):
        """Matching is exact apart from case."""
        assert evaluate(question, " not given ").correct is False

    def test_non_string_is_malformed(self, question):
        result = evaluate(question, 1)
        assert result.correct is False
        assert result.warning is not None

    def test_invalid_content_label_rejected(self):
        with pytest.raises(ValueError):
            make_question("true_false_not_given", {"statement": "s", "answer": "yes"})


class TestTextMatch:
    """Test fill-in-blank, short answer, sentence and summary completion."""

    @pytest.fixture
    def question(self):
        return make_question("fill_in_blanks", {"correctAnswers": ["13%", "13 percent"]})

    def test_trimmed_match(self, question):
        """' 13% ' matches '13%' after trimming."""
        assert evaluate(question, " 13% ").correct is True

    def test_any_accepted_answer(self, question):
        assert evaluate(question, "13 Percent").correct is True

    def test_no_match(self, question):
        assert evaluate(question, "14%").correct is False

    def test_numbers_compared_as_text(self):
        question = make_question("short_answer", {"correctAnswers": ["3", "third"]})
        assert evaluate(question, 3).correct is True

    @pytest.mark.parametrize("type_tag", ["short_answer", "sentence_completion", "summary_completion"])
    def test_variants_share_the_rule(self, type_tag):
        question = make_question(type_tag, {"prompt": "p", "correctAnswers": ["Harbour"]})
        assert evaluate(question, "harbour").correct is True

    def test_list_is_malformed(self, question):
        result = evaluate(question, ["13%"])
        assert result.correct is False
        assert result.warning is not None


class TestMatching:
    """Test matching headings and matching information."""

    @pytest.fixture
    def headings(self):
        return make_question(
            "matching_headings",
            {
                "headings": ["h0", "h1", "h2"],
                "paragraphs": ["A", "B"],
                "correctMatching": [
                    {"paragraphIndex": 0, "headingIndex": 2},
                    {"paragraphIndex": 1, "headingIndex": 0},
                ],
            },
        )

    @pytest.fixture
    def information(self):
        return make_question(
            "matching_information",
            {"information": ["i0", "i1"], "paragraphs": ["A", "B", "C"], "correctMatches": {"0": "B", "1": "C"}},
        )

    @pytest.mark.parametrize(
        "answer",
        [
            {"0": 2, "1": 0},
            [{"paragraphIndex": 0, "headingIndex": 2}, {"paragraphIndex": 1, "headingIndex": 0}],
            [[1, 0], [0, 2]],
            [2, 0],
        ],
    )
    def test_headings_accepted_shapes(self, headings, answer):
        assert evaluate(headings, answer).correct is True

    def test_headings_one_wrong_pair(self, headings):
        assert evaluate(headings, {"0": 2, "1": 1}).correct is False

    def test_headings_missing_pair(self, headings):
        assert evaluate(headings, {"0": 2}).correct is False

    def test_information_match(self, information):
        assert evaluate(information, {"0": "B", "1": " C "}).correct is True

    def test_information_mismatch(self, information):
        assert evaluate(information, {"0": "C", "1": "B"}).correct is False

    def test_malformed_pair(self, headings):
        result = evaluate(headings, [[0, 1, 2]])
        assert result.correct is False
        assert result.warning is not None

    def test_to_pairs_skips_null_entries(self):
        assert to_pairs([2, None, 1]) == {"0": "2", "2": "1"}
