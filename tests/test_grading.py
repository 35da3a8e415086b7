"""
Tests for the per-type quiz graders
"""
import pytest

from services.grading import (
    ChoiceQuestionGrader, InteractiveGrader, QuizGrader, TextInputGrader, classify_execution_error,
    match_keywords, partial_points
)


def make_question(question_type, question_data, points=4, **extra):
    return {"id": "q1", "question_type": question_type, "question_data": question_data, "points": points, **extra}


class TestChoiceGrading:
    """single_choice, multiple_choice and true_false"""

    def test_single_choice_correct(self):
        question = make_question("single_choice", {"options": ["a", "b"], "correct_option_index": 1})
        result = ChoiceQuestionGrader.grade_single_choice(question, 1)
        assert result.is_correct
        assert result.points_earned == 4

    def test_single_choice_wrong(self):
        question = make_question("single_choice", {"options": ["a", "b"], "correct_option_index": 1})
        result = ChoiceQuestionGrader.grade_single_choice(question, {"selected_option_index": 0})
        assert not result.is_correct
        assert result.points_earned == 0

    def test_single_choice_invalid_format(self):
        question = make_question("single_choice", {"correct_option_index": 1})
        result = ChoiceQuestionGrader.grade_single_choice(question, "banana")
        assert result.feedback == "Invalid answer format"

    def test_missing_key_requires_manual_grading(self):
        question = make_question("single_choice", {"options": ["a", "b"]})
        result = ChoiceQuestionGrader.grade_single_choice(question, 0)
        assert result.requires_manual_grading

    def test_multiple_choice_partial_credit(self):
        question = make_question("multiple_choice", {"correct_option_indices": [0, 2]})
        result = ChoiceQuestionGrader.grade_multiple_choice(question, [0, 3])
        assert not result.is_correct
        assert result.points_earned == 2
        assert result.detailed_feedback["wrong_selections"] == 1

    def test_multiple_choice_exact(self):
        question = make_question("multiple_choice", {"correct_option_indices": [0, 2]})
        result = ChoiceQuestionGrader.grade_multiple_choice(question, [2, 0])
        assert result.is_correct
        assert result.points_earned == 4

    def test_true_false_legacy_answer(self):
        question = make_question("true_false", {}, correct_answer="false")
        assert ChoiceQuestionGrader.grade_true_false(question, "false").is_correct
        assert not ChoiceQuestionGrader.grade_true_false(question, True).is_correct


class TestTextInputGrading:
    """numerical, fill_blank and short_answer"""

    def test_numerical_within_tolerance(self):
        question = make_question("numerical", {"correct_answer": 3.14, "tolerance": 0.01})
        assert TextInputGrader.grade_numerical(question, "3.145").is_correct

    def test_numerical_outside_tolerance_feedback(self):
        question = make_question("numerical", {"correct_answer": 10, "tolerance": 0.5, "units": "m"})
        result = TextInputGrader.grade_numerical(question, 11)
        assert not result.is_correct
        assert result.feedback == "Expected 10 m (tolerance: ±0.5)"

    def test_numerical_feedback_keeps_every_digit(self):
        question = make_question("numerical", {"correct_answer": 299792458, "tolerance": 0.25})
        result = TextInputGrader.grade_numerical(question, 3e8)
        assert result.feedback == "Expected 299792458 (tolerance: ±0.25)"

        question = make_question("numerical", {"correct_answer": 1.0000001, "tolerance": 0})
        assert TextInputGrader.grade_numerical(question, 1).feedback == "Expected 1.0000001 (tolerance: ±0)"

    def test_numerical_acceptable_range(self):
        question = make_question("numerical", {
            "correct_answer": 10, "tolerance": 5, "acceptable_range": {"min": 9, "max": 12},
        })
        assert not TextInputGrader.grade_numerical(question, 8).is_correct
        assert TextInputGrader.grade_numerical(question, 11).is_correct

    def test_numerical_rejects_text(self):
        question = make_question("numerical", {"correct_answer": 10})
        assert TextInputGrader.grade_numerical(question, "ten").feedback == "Invalid answer format"

    def test_fill_blank_partial(self):
        question = make_question("fill_blank", {
            "text_with_blanks": "{{blank}} is the capital of {{blank}}",
            "acceptable_answers": [
                {"answers": ["Paris"]},
                {"answers": ["France"], "case_sensitive": True},
            ],
        })
        result = TextInputGrader.grade_fill_blank(question, ["paris", "france"])
        assert result.points_earned == 2
        assert result.feedback == "1/2 blanks correct"

    def test_short_answer_keywords(self):
        question = make_question("short_answer", {"keywords": ["stack", "queue"]})
        result = TextInputGrader.grade_short_answer(question, "A Stack is used here")
        assert result.points_earned == 2
        assert result.detailed_feedback["keywords_found"] == ["stack"]

    def test_short_answer_without_keywords_needs_manual_grading(self):
        question = make_question("short_answer", {})
        result = TextInputGrader.grade_short_answer(question, "anything")
        assert result.requires_manual_grading
        assert result.points_earned == 0

    def test_short_answer_too_long(self):
        question = make_question("short_answer", {"keywords": ["a"], "max_length": 5})
        result = TextInputGrader.grade_short_answer(question, "far too long")
        assert result.points_earned == 0
        assert "maximum length" in result.feedback


class TestKeywordMatching:

    def test_exact_mode_needs_whole_words(self):
        assert match_keywords("recursion recurses", ["recurse"], mode="exact") == []
        assert match_keywords("it will recurse", ["recurse"], mode="exact") == ["recurse"]

    def test_fuzzy_mode_tolerates_typos(self):
        assert match_keywords("uses recursian", ["recursion"], mode="fuzzy") == ["recursion"]

    def test_case_sensitive(self):
        assert match_keywords("python", ["Python"], case_sensitive=True) == []


class TestInteractiveGrading:
    """matching, ordering and dropdown"""

    def test_matching_partial(self):
        question = make_question("matching", {
            "left_items": [{"id": "1"}, {"id": "2"}],
            "right_items": [{"id": "a"}, {"id": "b"}],
            "correct_matches": {"1": "a", "2": "b"},
        })
        result = InteractiveGrader.grade_matching(question, {"1": "a", "2": "a"})
        assert result.points_earned == 2
        assert not result.is_correct

    def test_ordering_weighted(self):
        question = make_question("ordering", {"correct_order": ["a", "b", "c"]}, points=6)
        result = InteractiveGrader.grade_ordering(question, ["b", "a", "c"], weighted=True)
        # only the last position (weight 3 of 6) is right
        assert result.points_earned == 3

    def test_ordering_equal_weights(self):
        question = make_question("ordering", {"correct_order": ["a", "b", "c"]}, points=6)
        result = InteractiveGrader.grade_ordering(question, ["b", "a", "c"])
        assert result.points_earned == 2

    def test_dropdown_is_case_insensitive(self):
        question = make_question("dropdown", {
            "text_with_dropdowns": "{{dropdown}} and {{dropdown}}",
            "dropdown_options": [["Red", "Blue"], ["Cat", "Dog"]],
            "correct_selections": ["Red", "Dog"],
        })
        result = InteractiveGrader.grade_dropdown(question, ["red", "cat"])
        assert result.points_earned == 2
        assert result.feedback == "1/2 dropdowns correct"


class TestQuizGrader:
    """Dispatch by question type"""

    async def test_manual_types(self):
        result = await QuizGrader().grade_question(make_question("drag_drop", {}), {})
        assert result.requires_manual_grading

    async def test_unknown_type_is_manual(self):
        result = await QuizGrader().grade_question(make_question("essay", {}), "text")
        assert result.requires_manual_grading

    async def test_dispatches_to_type_grader(self):
        question = make_question("true_false", {"correct_answer": True})
        result = await QuizGrader().grade_question(question, True)
        assert result.is_correct


@pytest.mark.parametrize("error,kind", [
    (None, None),
    ("Execution timeout after 5s", "timeout"),
    ("SyntaxError: invalid syntax", "compilation"),
    ("MemoryError", "memory"),
    ("ZeroDivisionError: division by zero", "runtime"),
])
def test_classify_execution_error(error, kind):
    assert classify_execution_error(error) == kind


def test_partial_points_rounds_to_cents():
    assert partial_points(1 / 3, 1) == 0.33
