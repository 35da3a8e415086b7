# services/grading.py
"""
Per-type quiz graders.

Every grader takes the stored question document and the student's answer,
normalizes both, and returns a ``GradingResult``. Scores for partially
correct answers are ``fraction * points`` rounded to two decimals.
"""
import difflib
import logging
import math
import re
from typing import Any, Dict, List, Optional

from models.quiz import QuestionTypeEnum, MANUAL_TYPES
from schemas.grading import GradingResult
from services.answer_normalization import (
    normalize_answer, normalize_correct_answer, question_data_of, to_int, to_number
)
from services.code_executor import CodeExecutor, UnsupportedLanguageError

logger = logging.getLogger(__name__)

INVALID_FORMAT = "Invalid answer format"
MANUAL_GRADING = "Manual grading required"
GRADING_ERROR = "Error occurred during automatic grading"


def question_points(question: Dict[str, Any]) -> float:
    return float(to_number(question.get("points")) or 0)

def partial_points(fraction: float, points: float) -> float:
    return round(fraction * points, 2)

def _invalid() -> GradingResult:
    return GradingResult(feedback=INVALID_FORMAT)

def _no_answer_key() -> GradingResult:
    return GradingResult(feedback="No correct answer configured for this question", requires_manual_grading=True)

def _format_number(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def numeric_within(value: float, expected: float, tolerance: float, acceptable_range: Optional[dict] = None) -> bool:
    if abs(value - expected) > tolerance:
        return False
    if isinstance(acceptable_range, dict):
        low = to_number(acceptable_range.get("min"))
        high = to_number(acceptable_range.get("max"))
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
    return True


def match_keywords(
    text: str,
    keywords: List[str],
    mode: str = "partial",
    case_sensitive: bool = False,
    fuzzy_threshold: float = 0.8
) -> List[str]:
    """Return the keywords found in ``text``."""
    flags = 0 if case_sensitive else re.IGNORECASE
    haystack = text if case_sensitive else text.lower()
    words = re.findall(r"\w+", haystack)
    found = []

    for keyword in keywords:
        needle = str(keyword) if case_sensitive else str(keyword).lower()
        if not needle.strip():
            continue
        if mode == "exact":
            hit = re.search(rf"\b{re.escape(str(keyword))}\b", text, flags) is not None
        elif mode == "fuzzy":
            hit = needle in haystack or any(
                difflib.SequenceMatcher(None, needle, word).ratio() >= fuzzy_threshold
                for word in words
            )
        else:
            hit = needle in haystack
        if hit:
            found.append(keyword)
    return found


class ChoiceQuestionGrader:
    """single_choice, multiple_choice and true_false."""

    @staticmethod
    def grade_single_choice(question: Dict[str, Any], answer: Any) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.single_choice, answer)
        if not isinstance(submitted, dict) or submitted.get("selected_option_index") is None:
            return _invalid()
        key = normalize_correct_answer(question)
        if key is None:
            return _no_answer_key()

        is_correct = submitted["selected_option_index"] == key["selected_option_index"]
        return GradingResult(
            is_correct=is_correct,
            points_earned=question_points(question) if is_correct else 0,
            feedback="Correct!" if is_correct else "Incorrect answer",
        )

    @staticmethod
    def grade_multiple_choice(question: Dict[str, Any], answer: Any) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.multiple_choice, answer)
        if not isinstance(submitted, dict) or submitted.get("selected_option_indices") is None:
            return _invalid()
        key = normalize_correct_answer(question)
        if not key or not key["selected_option_indices"]:
            return _no_answer_key()

        selected = set(submitted["selected_option_indices"])
        correct = set(key["selected_option_indices"])
        points = question_points(question)

        if selected == correct:
            return GradingResult(is_correct=True, points_earned=points, feedback="Correct!")

        hits = len(selected & correct)
        return GradingResult(
            points_earned=partial_points(hits / len(correct), points),
            feedback=f"Partially correct: {hits}/{len(correct)} correct options selected" if hits else "Incorrect answer",
            detailed_feedback={
                "correct_selections": hits,
                "wrong_selections": len(selected - correct),
                "total_correct": len(correct),
            },
        )

    @staticmethod
    def grade_true_false(question: Dict[str, Any], answer: Any) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.true_false, answer)
        if not isinstance(submitted, dict) or not isinstance(submitted.get("selected_answer"), bool):
            return _invalid()
        key = normalize_correct_answer(question)
        if key is None:
            return _no_answer_key()

        is_correct = submitted["selected_answer"] == key["selected_answer"]
        return GradingResult(
            is_correct=is_correct,
            points_earned=question_points(question) if is_correct else 0,
            feedback="Correct!" if is_correct else "Incorrect answer",
        )


class TextInputGrader:
    """numerical, fill_blank and short_answer."""

    @staticmethod
    def grade_numerical(
        question: Dict[str, Any],
        answer: Any,
        tolerance: Optional[float] = None,
        acceptable_range: Optional[dict] = None
    ) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.numerical, answer)
        if not isinstance(submitted, dict) or not isinstance(submitted.get("answer"), float):
            return _invalid()
        key = normalize_correct_answer(question)
        if key is None:
            return _no_answer_key()

        qd = question_data_of(question)
        if tolerance is None:
            tolerance = abs(to_number(qd.get("tolerance")) or 0)
        expected = key["answer"]
        value = submitted["answer"]
        if acceptable_range is None:
            acceptable_range = qd.get("acceptable_range")
        is_correct = numeric_within(value, expected, tolerance, acceptable_range)

        units = f" {qd['units']}" if qd.get("units") else ""
        if not math.isfinite(tolerance):
            tolerance = None
        if is_correct:
            feedback = "Correct!"
        elif tolerance is None:
            feedback = f"Expected a value within the accepted range{units}"
        else:
            feedback = f"Expected {_format_number(expected)}{units} (tolerance: ±{_format_number(tolerance)})"
        return GradingResult(
            is_correct=is_correct,
            points_earned=question_points(question) if is_correct else 0,
            feedback=feedback,
            detailed_feedback={"expected": expected, "submitted": value, "tolerance": tolerance},
        )

    @staticmethod
    def grade_fill_blank(question: Dict[str, Any], answer: Any) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.fill_blank, answer)
        if not isinstance(submitted, dict) or not isinstance(submitted.get("answers"), list):
            return _invalid()

        qd = question_data_of(question)
        blanks = qd.get("acceptable_answers")
        if not qd.get("text_with_blanks") or not isinstance(blanks, list) or not blanks:
            return _no_answer_key()

        given = {}
        for entry in submitted["answers"]:
            if isinstance(entry, dict) and to_int(entry.get("blank_index")) is not None:
                given[to_int(entry["blank_index"])] = str(entry.get("answer") or "").strip()

        correct = 0
        blank_results = []
        for index, blank in enumerate(blanks):
            blank = blank if isinstance(blank, dict) else {"answers": [blank]}
            case_sensitive = bool(blank.get("case_sensitive", False))
            accepted = [str(a).strip() for a in blank.get("answers", [])]
            response = given.get(index, "")
            if case_sensitive:
                hit = response in accepted
            else:
                hit = response.lower() in [a.lower() for a in accepted]
            hit = hit and response != ""
            correct += hit
            blank_results.append({"blank_index": index, "correct": hit})

        total = len(blanks)
        return GradingResult(
            is_correct=correct == total,
            points_earned=partial_points(correct / total, question_points(question)),
            feedback=f"{correct}/{total} blanks correct",
            detailed_feedback={"blanks": blank_results},
        )

    @staticmethod
    def grade_short_answer(
        question: Dict[str, Any],
        answer: Any,
        keyword_mode: str = "partial",
        case_sensitive: bool = False,
        fuzzy_threshold: float = 0.8
    ) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.short_answer, answer)
        if not isinstance(submitted, dict) or not isinstance(submitted.get("answer"), str):
            return _invalid()

        text = submitted["answer"]
        qd = question_data_of(question)
        max_length = to_int(qd.get("max_length"))
        if max_length and len(text) > max_length:
            return GradingResult(feedback=f"Answer exceeds maximum length of {max_length} characters")

        keywords = [k for k in qd.get("keywords") or [] if str(k).strip()]
        if not keywords:
            return GradingResult(feedback=MANUAL_GRADING, requires_manual_grading=True)

        found = match_keywords(text, keywords, keyword_mode, case_sensitive, fuzzy_threshold)
        return GradingResult(
            is_correct=len(found) == len(keywords),
            points_earned=partial_points(len(found) / len(keywords), question_points(question)),
            feedback=f"Found {len(found)}/{len(keywords)} key concepts",
            detailed_feedback={"keywords_found": found, "keywords_total": len(keywords)},
        )


class InteractiveGrader:
    """matching, ordering and dropdown."""

    @staticmethod
    def grade_matching(question: Dict[str, Any], answer: Any) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.matching, answer)
        if not isinstance(submitted, dict) or not isinstance(submitted.get("matches"), dict):
            return _invalid()

        qd = question_data_of(question)
        if not qd.get("left_items") or not qd.get("right_items"):
            return GradingResult(feedback="Question is missing matching items")
        key = normalize_correct_answer(question)
        if not key:
            return _no_answer_key()

        expected = {str(k): str(v) for k, v in key["matches"].items()}
        given = {str(k): str(v) for k, v in submitted["matches"].items()}
        correct = sum(1 for left, right in expected.items() if given.get(left) == right)
        total = len(expected)

        return GradingResult(
            is_correct=correct == total,
            points_earned=partial_points(correct / total, question_points(question)),
            feedback=f"{correct}/{total} matches correct",
            detailed_feedback={"correct_matches": correct, "total_matches": total},
        )

    @staticmethod
    def grade_ordering(question: Dict[str, Any], answer: Any, weighted: bool = False) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.ordering, answer)
        if not isinstance(submitted, dict) or not isinstance(submitted.get("ordered_item_ids"), list):
            return _invalid()
        key = normalize_correct_answer(question)
        if not key or not key["ordered_item_ids"]:
            return _no_answer_key()

        expected = [str(i) for i in key["ordered_item_ids"]]
        given = [str(i) for i in submitted["ordered_item_ids"]]
        # later positions count more when weighted
        weights = [index + 1 if weighted else 1 for index in range(len(expected))]
        positions = [index < len(given) and given[index] == item for index, item in enumerate(expected)]
        earned = sum(w for w, hit in zip(weights, positions) if hit)

        return GradingResult(
            is_correct=given == expected,
            points_earned=partial_points(earned / sum(weights), question_points(question)),
            feedback=f"{sum(positions)}/{len(expected)} items in correct position",
            detailed_feedback={"correct_positions": sum(positions), "total_items": len(expected)},
        )

    @staticmethod
    def grade_dropdown(question: Dict[str, Any], answer: Any) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.dropdown, answer)
        if not isinstance(submitted, dict) or not isinstance(submitted.get("selections"), list):
            return _invalid()

        qd = question_data_of(question)
        options = qd.get("dropdown_options")
        if not qd.get("text_with_dropdowns") or not isinstance(options, list) or not options:
            return GradingResult(feedback="Question is missing dropdown options")
        key = normalize_correct_answer(question)
        if not key:
            return _no_answer_key()

        accepted = {}
        for selection in key["selections"]:
            value = selection.get("selected_option")
            values = value if isinstance(value, list) else [value]
            accepted[selection.get("dropdown_index")] = {str(v).strip().lower() for v in values if v is not None}

        correct = 0
        for selection in submitted["selections"]:
            if not isinstance(selection, dict):
                continue
            index = to_int(selection.get("dropdown_index"))
            choice = str(selection.get("selected_option") or "").strip().lower()
            if choice and choice in accepted.get(index, set()):
                correct += 1

        total = len(options)
        return GradingResult(
            is_correct=correct == total,
            points_earned=partial_points(correct / total, question_points(question)),
            feedback=f"{correct}/{total} dropdowns correct",
            detailed_feedback={"correct_dropdowns": correct, "total_dropdowns": total},
        )


def classify_execution_error(error: Optional[str]) -> Optional[str]:
    if not error:
        return None
    lowered = error.lower()
    if "timeout" in lowered:
        return "timeout"
    if "memoryerror" in lowered or "out of memory" in lowered:
        return "memory"
    if "syntaxerror" in lowered or "indentationerror" in lowered:
        return "compilation"
    return "runtime"


class CodingGrader:

    def __init__(self, executor: Optional[CodeExecutor] = None):
        self.executor = executor or CodeExecutor()

    async def grade_coding(self, question: Dict[str, Any], answer: Any, custom_weights: bool = False) -> GradingResult:
        submitted = normalize_answer(QuestionTypeEnum.coding, answer)
        if not isinstance(submitted, dict):
            return _invalid()
        code = submitted.get("code")
        if not isinstance(code, str) or not code.strip():
            return GradingResult(feedback="No code submitted")

        qd = question_data_of(question)
        test_cases = [tc for tc in qd.get("test_cases") or [] if isinstance(tc, dict)]
        if not test_cases:
            return GradingResult(feedback=MANUAL_GRADING, requires_manual_grading=True)

        try:
            results = await self.executor.run_test_cases(code, qd.get("language") or "javascript", test_cases)
        except UnsupportedLanguageError as e:
            return GradingResult(feedback=str(e))

        if custom_weights:
            weights = [float(to_number(tc.get("points")) or 1) for tc in test_cases]
        else:
            weights = [1.0] * len(test_cases)

        passed = sum(1 for r in results if r.passed)
        earned = sum(w for w, r in zip(weights, results) if r.passed)
        total = len(results)

        if passed == total:
            suffix = " - Excellent work!"
        elif passed > 0:
            suffix = " - Good progress, review failed test cases"
        else:
            suffix = " - All tests failed, check your implementation"

        test_results = []
        for test_case, result in zip(test_cases, results):
            entry = {
                "test_case_id": result.test_case_id,
                "passed": result.passed,
                "execution_time_ms": result.execution_time_ms,
                "error_kind": classify_execution_error(result.error),
                "is_hidden": bool(test_case.get("is_hidden")),
            }
            if not test_case.get("is_hidden"):
                entry.update({
                    "input": test_case.get("input"),
                    "expected_output": result.expected_output,
                    "actual_output": result.actual_output,
                    "error": result.error,
                })
            test_results.append(entry)

        return GradingResult(
            is_correct=passed == total,
            points_earned=partial_points(earned / sum(weights), question_points(question)),
            feedback=f"Passed {passed}/{total} test cases{suffix}",
            detailed_feedback={"passed": passed, "total": total, "test_results": test_results},
        )


class QuizGrader:
    """Dispatches a question to the grader for its type."""

    def __init__(self, executor: Optional[CodeExecutor] = None):
        self.coding = CodingGrader(executor)
        self.sync_graders = {
            QuestionTypeEnum.single_choice: ChoiceQuestionGrader.grade_single_choice,
            QuestionTypeEnum.multiple_choice: ChoiceQuestionGrader.grade_multiple_choice,
            QuestionTypeEnum.true_false: ChoiceQuestionGrader.grade_true_false,
            QuestionTypeEnum.numerical: TextInputGrader.grade_numerical,
            QuestionTypeEnum.fill_blank: TextInputGrader.grade_fill_blank,
            QuestionTypeEnum.short_answer: TextInputGrader.grade_short_answer,
            QuestionTypeEnum.matching: InteractiveGrader.grade_matching,
            QuestionTypeEnum.ordering: InteractiveGrader.grade_ordering,
            QuestionTypeEnum.dropdown: InteractiveGrader.grade_dropdown,
        }

    async def grade_question(self, question: Dict[str, Any], answer: Any) -> GradingResult:
        question_type = question.get("question_type")
        try:
            if question_type == QuestionTypeEnum.coding:
                return await self.coding.grade_coding(question, answer)
            grader = self.sync_graders.get(question_type)
            if grader is None:
                if question_type not in MANUAL_TYPES:
                    logger.warning(f"Unknown question type '{question_type}' on question {question.get('id')}")
                return GradingResult(
                    feedback="Manual grading required for this question type",
                    requires_manual_grading=True,
                )
            return grader(question, answer)
        except Exception:
            logger.exception(f"Grading failed for question {question.get('id')}")
            return GradingResult(feedback=GRADING_ERROR)
