# utils/question_validation.py
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from models.quiz import QuestionTypeEnum
from services.answer_normalization import parse_json_field, to_number

BLANK_MARKER = "{{blank}}"
DROPDOWN_MARKER = "{{dropdown}}"


class QuestionValidationResult(BaseModel):
    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def _is_index(value: Any, size: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < size


def _options(data: dict) -> list:
    options = data.get("options")
    return options if isinstance(options, list) else []


def _validate_single_choice(data, errors, warnings):
    options = _options(data)
    if len(options) < 2:
        errors.append("Single choice questions must have at least 2 options")
    if any(not isinstance(o, str) or not o.strip() for o in options):
        errors.append("All options must be non-empty strings")
    if not _is_index(data.get("correct_option_index"), len(options)):
        errors.append("Correct option index must be a valid index within the options array")
    if len(options) > 10:
        warnings.append("Large number of options may affect user experience")


def _validate_multiple_choice(data, errors, warnings):
    options = _options(data)
    if len(options) < 2:
        errors.append("Multiple choice questions must have at least 2 options")
    indices = data.get("correct_option_indices")
    if not isinstance(indices, list) or not indices:
        errors.append("Multiple choice questions must have at least one correct option")
        return
    for position, index in enumerate(indices):
        if not _is_index(index, len(options)):
            errors.append(f"Correct option index {index} at position {position} is invalid")
    minimum, maximum = data.get("min_selections"), data.get("max_selections")
    if minimum and maximum and minimum > maximum:
        errors.append("Minimum selections cannot be greater than maximum selections")
    if len(indices) == 1:
        warnings.append("Only one correct option selected - consider using single choice instead")


def _validate_true_false(data, errors, warnings):
    if not isinstance(data.get("correct_answer"), bool):
        errors.append("True/False questions must have a boolean correct_answer field")


def _validate_matching(data, errors, warnings):
    left, right = data.get("left_items"), data.get("right_items")
    if not isinstance(left, list) or not left:
        errors.append("Matching questions must have at least one left item")
        left = []
    if not isinstance(right, list) or not right:
        errors.append("Matching questions must have at least one right item")
        right = []
    if left and right and len(left) != len(right):
        warnings.append("Number of left and right items differ - this may confuse students")

    matches = data.get("correct_matches")
    if not isinstance(matches, dict) or not matches:
        errors.append("Matching questions must have correct_matches mapping")
        return
    right_ids = {str(item.get("id")) for item in right if isinstance(item, dict)}
    for item in left:
        item_id = str(item.get("id")) if isinstance(item, dict) else None
        if item_id not in {str(k) for k in matches}:
            errors.append(f"Left item {item_id} is missing from correct_matches")
    for left_id, right_id in matches.items():
        if right_ids and str(right_id) not in right_ids:
            errors.append(f"Match for {left_id} points to unknown right item {right_id}")


def _validate_fill_blank(data, errors, warnings):
    text = data.get("text_with_blanks")
    if not isinstance(text, str) or not text:
        errors.append("Fill blank questions must have text_with_blanks field")
        return
    blanks = data.get("acceptable_answers")
    if not isinstance(blanks, list):
        errors.append("Fill blank questions must have acceptable_answers array")
        return
    count = text.count(BLANK_MARKER)
    if count == 0:
        errors.append("Text must contain at least one {{blank}} placeholder")
    if count != len(blanks):
        errors.append(f"Number of blanks ({count}) must match number of acceptable answer sets ({len(blanks)})")
    for index, blank in enumerate(blanks):
        answers = blank.get("answers") if isinstance(blank, dict) else None
        if not isinstance(answers, list) or not answers:
            errors.append(f"Blank {index} must have at least one acceptable answer")


def _validate_dropdown(data, errors, warnings):
    text = data.get("text_with_dropdowns")
    if not isinstance(text, str) or not text:
        errors.append("Dropdown questions must have text_with_dropdowns field")
        return
    dropdowns = data.get("dropdown_options")
    if not isinstance(dropdowns, list):
        errors.append("Dropdown questions must have dropdown_options array")
        return
    count = text.count(DROPDOWN_MARKER)
    if count == 0:
        errors.append("Text must contain at least one {{dropdown}} placeholder")
    if count != len(dropdowns):
        errors.append(f"Number of dropdowns ({count}) must match number of option sets ({len(dropdowns)})")
    for index, entry in enumerate(dropdowns):
        options = entry.get("options") if isinstance(entry, dict) else entry
        if not isinstance(options, list) or len(options) < 2:
            errors.append(f"Dropdown {index} must have at least 2 options")


def _validate_numerical(data, errors, warnings):
    if to_number(data.get("correct_answer")) is None:
        errors.append("Numerical questions must have a numeric correct_answer")
    tolerance = data.get("tolerance")
    if tolerance is not None and (to_number(tolerance) is None or to_number(tolerance) < 0):
        errors.append("Tolerance must be a non-negative number")
    precision = data.get("precision")
    if precision is not None and (to_number(precision) is None or to_number(precision) < 0):
        errors.append("Precision must be a non-negative number")
    acceptable = data.get("acceptable_range")
    if acceptable is not None:
        low = to_number(acceptable.get("min")) if isinstance(acceptable, dict) else None
        high = to_number(acceptable.get("max")) if isinstance(acceptable, dict) else None
        if low is None or high is None:
            errors.append("Acceptable range min and max must be numbers")
        elif low >= high:
            errors.append("Acceptable range min must be less than max")


def _validate_test_cases(test_cases, errors, label):
    if not isinstance(test_cases, list) or not test_cases:
        errors.append(f"{label} questions must have at least one test case")
        return []
    for index, test_case in enumerate(test_cases):
        if not isinstance(test_case, dict) or "input" not in test_case or "expected_output" not in test_case:
            errors.append(f"Test case {index} must have input and expected_output")
            continue
        points = to_number(test_case.get("points"))
        if points is None or points <= 0:
            errors.append(f"Test case {index} must have positive points")
    return test_cases


def _validate_coding(data, errors, warnings):
    if not isinstance(data.get("language"), str) or not data.get("language"):
        errors.append("Coding questions must specify a programming language")
    test_cases = _validate_test_cases(data.get("test_cases"), errors, "Coding")
    if test_cases and all(isinstance(tc, dict) and tc.get("is_hidden") for tc in test_cases):
        warnings.append("All test cases are hidden - students will get no example output")
    for field, label in (("time_limit", "Time limit"), ("memory_limit", "Memory limit")):
        if field in data and (to_number(data[field]) is None or to_number(data[field]) <= 0):
            errors.append(f"{label} must be a positive number")


def _validate_short_answer(data, errors, warnings):
    max_length = data.get("max_length")
    if max_length is not None and (to_number(max_length) is None or to_number(max_length) <= 0):
        errors.append("Max length must be a positive number")
    keywords = data.get("keywords")
    if keywords is None or keywords == []:
        warnings.append("No keywords defined - answers will require manual grading")
    elif not isinstance(keywords, list):
        errors.append("Keywords must be an array of strings")
    else:
        for index, keyword in enumerate(keywords):
            if not isinstance(keyword, str):
                errors.append(f"Keyword at index {index} must be a string")


def _validate_algorithmic(data, errors, warnings):
    for field in ("algorithm_description", "input_format", "output_format"):
        if not data.get(field):
            errors.append(f"Algorithmic questions must have {field}")
    _validate_test_cases(data.get("test_cases"), errors, "Algorithmic")


def _validate_logical_expression(data, errors, warnings):
    if not isinstance(data.get("expression_format"), str) or not data.get("expression_format"):
        errors.append("Logical expression questions must have expression_format")
    variables = data.get("variables")
    if not isinstance(variables, list) or not variables:
        errors.append("Logical expression questions must have at least one variable")
        variables = []
    if not isinstance(data.get("correct_expression"), str) or not data.get("correct_expression"):
        errors.append("Logical expression questions must have correct_expression")
    for index, variable in enumerate(variables):
        if not isinstance(variable, dict) or not variable.get("name") or not variable.get("description"):
            errors.append(f"Variable at index {index} must have name and description")


def _validate_drag_drop(data, errors, warnings):
    zones = data.get("drop_zones")
    items = data.get("draggable_items")
    if not isinstance(zones, list) or not zones:
        errors.append("Drag and drop questions must have at least one drop zone")
        zones = []
    if not isinstance(items, list) or not items:
        errors.append("Drag and drop questions must have at least one draggable item")
        items = []
    slots = 0
    for index, zone in enumerate(zones):
        zone = zone if isinstance(zone, dict) else {}
        dims = [zone.get(k) for k in ("x", "y", "width", "height")]
        if any(to_number(d) is None for d in dims):
            errors.append(f"Drop zone {index} must have numeric x, y, width, and height")
        elif to_number(zone["width"]) <= 0 or to_number(zone["height"]) <= 0:
            errors.append(f"Drop zone {index} must have positive width and height")
        slots += len(zone.get("correct_items") or [])
    if items and slots > len(items):
        warnings.append("More correct slots than draggable items - some items may need to be used multiple times")


def _validate_ordering(data, errors, warnings):
    items = data.get("items")
    if not isinstance(items, list) or len(items) < 2:
        errors.append("Ordering questions must have at least 2 items")
    if not isinstance(items, list) or not items:
        return
    orders = [item.get("order") if isinstance(item, dict) else None for item in items]
    if len(set(orders)) != len(orders):
        errors.append("All items must have unique order values")
    numeric = [o for o in orders if isinstance(o, int)]
    if len(numeric) == len(orders) and (min(numeric) != 1 or max(numeric) != len(items)):
        warnings.append("Order values should form a consecutive sequence starting from 1")


VALIDATORS = {
    QuestionTypeEnum.single_choice: _validate_single_choice,
    QuestionTypeEnum.multiple_choice: _validate_multiple_choice,
    QuestionTypeEnum.true_false: _validate_true_false,
    QuestionTypeEnum.matching: _validate_matching,
    QuestionTypeEnum.fill_blank: _validate_fill_blank,
    QuestionTypeEnum.dropdown: _validate_dropdown,
    QuestionTypeEnum.numerical: _validate_numerical,
    QuestionTypeEnum.algorithmic: _validate_algorithmic,
    QuestionTypeEnum.short_answer: _validate_short_answer,
    QuestionTypeEnum.coding: _validate_coding,
    QuestionTypeEnum.logical_expression: _validate_logical_expression,
    QuestionTypeEnum.drag_drop: _validate_drag_drop,
    QuestionTypeEnum.ordering: _validate_ordering,
}


def validate_question(question_type: str, question_data: Any) -> QuestionValidationResult:
    """Check that ``question_data`` has everything its type needs to be graded."""
    errors: List[str] = []
    warnings: List[str] = []
    data = parse_json_field(question_data)

    if not isinstance(data, dict):
        errors.append("Question data must be an object")
    else:
        validator = VALIDATORS.get(question_type)
        if validator is None:
            errors.append(f"Unknown question type: {question_type}")
        else:
            validator(data, errors, warnings)

    return QuestionValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
