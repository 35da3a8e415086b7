# services/answer_normalization.py
"""
Answer normalization.

Questions created before answers moved into ``question_data`` still carry the
answer key in the legacy ``correct_answer`` field, in whatever shape the
authoring form produced at the time (a bare index, a numeric string, a JSON
string, an object...). Everything here converts both the stored key and the
student's submission into one canonical shape per question type so graders
only ever compare like with like.

Canonical shapes::

    single_choice    {"selected_option_index": int}
    multiple_choice  {"selected_option_indices": [int, ...]}   (sorted)
    true_false       {"selected_answer": bool}
    numerical        {"answer": float}
    short_answer     {"answer": str}
    fill_blank       {"answers": [{"blank_index": int, "answer": str}]}
    matching         {"matches": {left_id: right_id}}
    ordering         {"ordered_item_ids": [id, ...]}
    dropdown         {"selections": [{"dropdown_index": int, "selected_option": str}]}
    coding           {"code": str}
"""
import copy
import json
import logging
import math
from typing import Any, Dict, List, Optional

from models.quiz import QuestionTypeEnum

logger = logging.getLogger(__name__)


def parse_json_field(value: Any) -> Any:
    """Decode JSON strings, leave everything else untouched."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except (ValueError, TypeError):
            return value
    return value


def to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def _int_list(values: Any) -> Optional[List[int]]:
    if not isinstance(values, list):
        return None
    converted = [to_int(v) for v in values]
    if any(v is None for v in converted):
        return None
    return sorted(set(converted))


def question_data_of(question: Dict[str, Any]) -> Dict[str, Any]:
    data = parse_json_field(question.get("question_data"))
    return data if isinstance(data, dict) else {}


def legacy_answer_of(question: Dict[str, Any]) -> Any:
    return parse_json_field(question.get("correct_answer"))


# -- correct answer lookup --------------------------------------------------

def _single_choice_key(qd: dict, legacy: Any) -> Optional[dict]:
    candidates = [qd.get("correct_option_index")]
    modern = parse_json_field(qd.get("correct_answer"))
    if isinstance(modern, dict):
        candidates.append(modern.get("selected_option_index"))
    else:
        candidates.append(modern)
    candidates.append(qd.get("selected_option_index"))
    if isinstance(legacy, dict):
        candidates.append(legacy.get("selected_option_index"))
        candidates.append(legacy.get("correct_option_index"))
    else:
        candidates.append(legacy)

    for candidate in candidates:
        index = to_int(candidate)
        if index is not None:
            return {"selected_option_index": index}
    return None


def _multiple_choice_key(qd: dict, legacy: Any) -> Optional[dict]:
    candidates = [qd.get("correct_option_indices"), parse_json_field(qd.get("correct_answer"))]
    if isinstance(legacy, dict):
        candidates.append(legacy.get("correct_option_indices"))
        candidates.append(legacy.get("selected_option_indices"))
    else:
        candidates.append(legacy)

    for candidate in candidates:
        indices = _int_list(candidate)
        if indices is not None:
            return {"selected_option_indices": indices}
    return None


def _true_false_key(qd: dict, legacy: Any) -> Optional[dict]:
    candidates = [qd.get("correct_answer")]
    if isinstance(legacy, dict):
        candidates.append(legacy.get("answer"))
        candidates.append(legacy.get("selected_answer"))
    else:
        candidates.append(legacy)

    for candidate in candidates:
        value = to_bool(candidate)
        if value is not None:
            return {"selected_answer": value}
    return None


def _numerical_key(qd: dict, legacy: Any) -> Optional[dict]:
    for candidate in (qd.get("correct_answer"), legacy.get("answer") if isinstance(legacy, dict) else legacy):
        value = to_number(candidate)
        if value is not None:
            return {"answer": value}
    return None


def _short_answer_key(qd: dict, legacy: Any) -> Optional[dict]:
    if qd.get("correct_answer") is not None:
        return {"answer": str(qd["correct_answer"])}
    if isinstance(legacy, dict) and legacy.get("answer") is not None:
        return {"answer": str(legacy["answer"])}
    if isinstance(legacy, str):
        return {"answer": legacy}
    return None


def _fill_blank_key(qd: dict, legacy: Any) -> Optional[dict]:
    blanks = qd.get("acceptable_answers")
    if isinstance(blanks, list) and blanks:
        answers = []
        for index, blank in enumerate(blanks):
            options = blank.get("answers", []) if isinstance(blank, dict) else []
            answers.append({"blank_index": index, "answer": options[0] if options else ""})
        return {"answers": answers}
    if isinstance(legacy, dict) and isinstance(legacy.get("answers"), list):
        return {"answers": legacy["answers"]}
    return None


def _matching_key(qd: dict, legacy: Any) -> Optional[dict]:
    matches = qd.get("correct_matches")
    if isinstance(matches, dict) and matches:
        return {"matches": matches}
    if isinstance(legacy, dict):
        for key in ("mappings", "matches"):
            if isinstance(legacy.get(key), dict):
                return {"matches": legacy[key]}
    return None


def _ordering_key(qd: dict, legacy: Any) -> Optional[dict]:
    if isinstance(legacy, dict) and isinstance(legacy.get("ordered_item_ids"), list):
        return {"ordered_item_ids": legacy["ordered_item_ids"]}
    if isinstance(qd.get("correct_order"), list):
        return {"ordered_item_ids": qd["correct_order"]}
    items = qd.get("items")
    if isinstance(items, list) and items:
        ranked = sorted(
            (item for item in items if isinstance(item, dict) and "id" in item),
            key=lambda item: item.get("order", 0)
        )
        return {"ordered_item_ids": [item["id"] for item in ranked]}
    return None


def _dropdown_key(qd: dict, legacy: Any) -> Optional[dict]:
    selections = []
    correct = qd.get("correct_selections")
    if isinstance(correct, list) and correct:
        for index, value in enumerate(correct):
            selections.append({"dropdown_index": index, "selected_option": value})
        return {"selections": selections}

    if isinstance(legacy, dict) and isinstance(legacy.get("selections"), list):
        legacy = legacy["selections"]
    if isinstance(legacy, list) and legacy:
        for index, entry in enumerate(legacy):
            if isinstance(entry, dict):
                selections.append({
                    "dropdown_index": to_int(entry.get("dropdown_index")) if entry.get("dropdown_index") is not None else index,
                    "selected_option": entry.get("selected_option"),
                })
            else:
                selections.append({"dropdown_index": index, "selected_option": entry})
        return {"selections": selections}
    return None


def _coding_key(qd: dict, legacy: Any) -> Optional[dict]:
    code = qd.get("expected_code") or qd.get("solution")
    if code:
        return {"code": code}
    if isinstance(legacy, dict) and legacy.get("code"):
        return {"code": legacy["code"]}
    return None


_CORRECT_ANSWER_LOOKUPS = {
    QuestionTypeEnum.single_choice: _single_choice_key,
    QuestionTypeEnum.multiple_choice: _multiple_choice_key,
    QuestionTypeEnum.true_false: _true_false_key,
    QuestionTypeEnum.numerical: _numerical_key,
    QuestionTypeEnum.short_answer: _short_answer_key,
    QuestionTypeEnum.fill_blank: _fill_blank_key,
    QuestionTypeEnum.matching: _matching_key,
    QuestionTypeEnum.ordering: _ordering_key,
    QuestionTypeEnum.dropdown: _dropdown_key,
    QuestionTypeEnum.coding: _coding_key,
}


def normalize_correct_answer(question: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Canonical answer key for a stored question, looking in ``question_data``
    first and in the legacy ``correct_answer`` field second. Returns None
    when no key can be found or the type has no automatic key.
    """
    lookup = _CORRECT_ANSWER_LOOKUPS.get(question.get("question_type"))
    if lookup is None:
        return None
    return lookup(question_data_of(question), legacy_answer_of(question))


# -- submitted answer -------------------------------------------------------

def normalize_answer(question_type: str, answer: Any) -> Any:
    """
    Coerce a submitted answer into the canonical shape for its type. Bare
    values are wrapped; values that cannot be coerced are passed through so
    the grader can report an invalid format.
    """
    answer = parse_json_field(answer)

    if question_type == QuestionTypeEnum.single_choice:
        raw = answer.get("selected_option_index") if isinstance(answer, dict) else answer
        index = to_int(raw)
        return {"selected_option_index": index} if index is not None else answer

    if question_type == QuestionTypeEnum.multiple_choice:
        raw = answer.get("selected_option_indices") if isinstance(answer, dict) else answer
        indices = _int_list(raw)
        return {"selected_option_indices": indices} if indices is not None else answer

    if question_type == QuestionTypeEnum.true_false:
        raw = answer.get("selected_answer") if isinstance(answer, dict) else answer
        value = to_bool(raw)
        return {"selected_answer": value} if value is not None else answer

    if question_type == QuestionTypeEnum.numerical:
        if isinstance(answer, dict):
            normalized = dict(answer)
            value = to_number(answer.get("answer"))
            if value is not None:
                normalized["answer"] = value
            return normalized
        value = to_number(answer)
        return {"answer": value} if value is not None else answer

    if question_type == QuestionTypeEnum.short_answer:
        if isinstance(answer, str):
            return {"answer": answer}
        return answer

    if question_type == QuestionTypeEnum.fill_blank:
        if isinstance(answer, list):
            return {"answers": [
                entry if isinstance(entry, dict) else {"blank_index": index, "answer": entry}
                for index, entry in enumerate(answer)
            ]}
        return answer

    if question_type == QuestionTypeEnum.ordering and isinstance(answer, list):
        return {"ordered_item_ids": answer}

    if question_type == QuestionTypeEnum.matching and isinstance(answer, dict) and "matches" not in answer:
        return {"matches": answer}

    if question_type == QuestionTypeEnum.dropdown and isinstance(answer, list):
        return {"selections": [
            entry if isinstance(entry, dict) else {"dropdown_index": index, "selected_option": entry}
            for index, entry in enumerate(answer)
        ]}

    if question_type == QuestionTypeEnum.coding and isinstance(answer, str):
        return {"code": answer}

    return answer


# -- legacy migration -------------------------------------------------------

def harmonize_question_data(question: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Return a copy of ``question_data`` with the legacy ``correct_answer``
    moved into the key the graders read for the question's type, or None
    when nothing needs to change.
    """
    legacy = legacy_answer_of(question)
    if legacy is None or legacy == "":
        return None

    qtype = question.get("question_type")
    qd = copy.deepcopy(question_data_of(question))
    if normalize_correct_answer({"question_type": qtype, "question_data": qd}) is not None:
        # question_data already answers for itself
        return None
    key = normalize_correct_answer({"question_type": qtype, "question_data": {}, "correct_answer": legacy})
    if key is None:
        return None

    if qtype == QuestionTypeEnum.single_choice and "correct_option_index" not in qd:
        qd["correct_option_index"] = key["selected_option_index"]
    elif qtype == QuestionTypeEnum.multiple_choice and "correct_option_indices" not in qd:
        qd["correct_option_indices"] = key["selected_option_indices"]
    elif qtype == QuestionTypeEnum.true_false and "correct_answer" not in qd:
        qd["correct_answer"] = key["selected_answer"]
    elif qtype in (QuestionTypeEnum.numerical, QuestionTypeEnum.short_answer) and "correct_answer" not in qd:
        qd["correct_answer"] = key["answer"]
    elif qtype == QuestionTypeEnum.matching and not qd.get("correct_matches"):
        qd["correct_matches"] = key["matches"]
    elif qtype == QuestionTypeEnum.ordering and not qd.get("correct_order"):
        qd["correct_order"] = key["ordered_item_ids"]
    elif qtype == QuestionTypeEnum.dropdown and not qd.get("correct_selections"):
        ordered = sorted(key["selections"], key=lambda s: s.get("dropdown_index") or 0)
        qd["correct_selections"] = [s.get("selected_option") for s in ordered]
    elif qtype == QuestionTypeEnum.coding and not qd.get("expected_code"):
        qd["expected_code"] = key["code"]
    else:
        return None

    logger.debug(f"Harmonized legacy answer for question {question.get('id')}")
    return qd
