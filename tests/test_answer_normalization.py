"""
Tests for answer normalization and legacy answer harmonization
"""
from services.answer_normalization import (
    harmonize_question_data, normalize_answer, normalize_correct_answer, parse_json_field, to_bool,
    to_int, to_number
)


class TestCoercion:
    """Scalar coercion helpers"""

    def test_parse_json_field_decodes_strings_only(self):
        assert parse_json_field('{"a": 1}') == {"a": 1}
        assert parse_json_field("not json") == "not json"
        assert parse_json_field([1, 2]) == [1, 2]

    def test_to_int(self):
        assert to_int("3") == 3
        assert to_int(2.0) == 2
        assert to_int(2.5) is None
        assert to_int(True) is None
        assert to_int("x") is None

    def test_to_number_rejects_non_finite(self):
        assert to_number("2.5") == 2.5
        assert to_number("nan") is None
        assert to_number(float("inf")) is None
        assert to_number(False) is None

    def test_to_bool(self):
        assert to_bool("TRUE") is True
        assert to_bool(0) is False
        assert to_bool("yes") is None


class TestCorrectAnswerLookup:
    """Answer keys come from question_data first and the legacy field second"""

    def test_single_choice_prefers_question_data(self):
        question = {
            "question_type": "single_choice",
            "question_data": {"correct_option_index": 2},
            "correct_answer": 0,
        }
        assert normalize_correct_answer(question) == {"selected_option_index": 2}

    def test_single_choice_falls_back_to_legacy_string(self):
        question = {"question_type": "single_choice", "question_data": {}, "correct_answer": "1"}
        assert normalize_correct_answer(question) == {"selected_option_index": 1}

    def test_multiple_choice_from_json_string(self):
        question = {"question_type": "multiple_choice", "question_data": "{}", "correct_answer": "[2, 0, 2]"}
        assert normalize_correct_answer(question) == {"selected_option_indices": [0, 2]}

    def test_true_false_from_legacy_object(self):
        question = {"question_type": "true_false", "question_data": {}, "correct_answer": {"answer": "false"}}
        assert normalize_correct_answer(question) == {"selected_answer": False}

    def test_ordering_derived_from_item_order(self):
        question = {
            "question_type": "ordering",
            "question_data": {"items": [{"id": "b", "order": 2}, {"id": "a", "order": 1}]},
        }
        assert normalize_correct_answer(question) == {"ordered_item_ids": ["a", "b"]}

    def test_dropdown_from_correct_selections(self):
        question = {"question_type": "dropdown", "question_data": {"correct_selections": ["red", "blue"]}}
        assert normalize_correct_answer(question) == {"selections": [
            {"dropdown_index": 0, "selected_option": "red"},
            {"dropdown_index": 1, "selected_option": "blue"},
        ]}

    def test_manual_types_have_no_key(self):
        assert normalize_correct_answer({"question_type": "drag_drop", "question_data": {}}) is None


class TestSubmittedAnswers:
    """Bare submissions are wrapped into the canonical shape"""

    def test_bare_values_are_wrapped(self):
        assert normalize_answer("single_choice", "1") == {"selected_option_index": 1}
        assert normalize_answer("multiple_choice", [2, 1]) == {"selected_option_indices": [1, 2]}
        assert normalize_answer("true_false", "true") == {"selected_answer": True}
        assert normalize_answer("numerical", "3.5") == {"answer": 3.5}
        assert normalize_answer("short_answer", "hello") == {"answer": "hello"}
        assert normalize_answer("ordering", ["a", "b"]) == {"ordered_item_ids": ["a", "b"]}
        assert normalize_answer("coding", "print(1)") == {"code": "print(1)"}

    def test_fill_blank_list(self):
        assert normalize_answer("fill_blank", ["x", "y"]) == {"answers": [
            {"blank_index": 0, "answer": "x"},
            {"blank_index": 1, "answer": "y"},
        ]}

    def test_matching_mapping_is_wrapped(self):
        assert normalize_answer("matching", {"1": "a"}) == {"matches": {"1": "a"}}

    def test_uncoercible_answer_passes_through(self):
        assert normalize_answer("single_choice", "first") == "first"


class TestHarmonize:
    """Moving legacy correct_answer values into question_data"""

    def test_moves_single_choice_answer(self):
        question = {
            "question_type": "single_choice",
            "question_data": {"options": ["a", "b"]},
            "correct_answer": 1,
        }
        assert harmonize_question_data(question) == {"options": ["a", "b"], "correct_option_index": 1}

    def test_existing_key_is_left_alone(self):
        question = {
            "question_type": "single_choice",
            "question_data": {"options": ["a", "b"], "correct_option_index": 0},
            "correct_answer": 1,
        }
        assert harmonize_question_data(question) is None

    def test_modern_correct_answer_is_not_overridden(self):
        question = {
            "question_type": "single_choice",
            "question_data": {"options": ["a", "b", "c"], "correct_answer": 2},
            "correct_answer": 0,
        }
        assert harmonize_question_data(question) is None
        assert normalize_correct_answer(question) == {"selected_option_index": 2}

    def test_nothing_to_do_without_legacy_answer(self):
        assert harmonize_question_data({"question_type": "numerical", "question_data": {}}) is None

    def test_dropdown_selections_become_a_list(self):
        question = {
            "question_type": "dropdown",
            "question_data": {},
            "correct_answer": {"selections": [
                {"dropdown_index": 1, "selected_option": "b"},
                {"dropdown_index": 0, "selected_option": "a"},
            ]},
        }
        assert harmonize_question_data(question) == {"correct_selections": ["a", "b"]}

    def test_does_not_mutate_input(self):
        question = {"question_type": "true_false", "question_data": {}, "correct_answer": "true"}
        harmonize_question_data(question)
        assert question["question_data"] == {}
