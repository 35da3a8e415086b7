import copy
import logging
import random
from fastapi import APIRouter, HTTPException, Depends, status
from typing import Any, Dict, List, Optional

from crud.course import CourseCRUD
from crud.enrollment import EnrollmentCRUD
from crud.quiz import QuizCRUD
from services.answer_normalization import harmonize_question_data, parse_json_field
from services.quiz_attempts import QuizAttemptService
from schemas.quiz import (
    BulkQuestionCreate, HarmonizeReport, QuestionCreate, QuestionReorder, QuestionResponse,
    QuestionUpdate, QuizCreate, QuizResponse, QuizStatusUpdate, QuizSubmitAll, QuizUpdate,
    SubmissionDetail
)
from dependencies import (
    ensure_course_manager, require_any_user, require_instructor_or_admin, require_student
)
from models.quiz import QuizStatusEnum
from models.user import User, RoleEnum
from utils.question_validation import validate_question

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quizzes", tags=["Quizzes"])

quiz_crud = QuizCRUD()
course_crud = CourseCRUD()
enrollment_crud = EnrollmentCRUD()
attempt_service = QuizAttemptService()

# question_data keys that give the answer away
ANSWER_KEYS = {
    "correct_option_index", "correct_option_indices", "correct_answer", "correct_matches",
    "correct_order", "correct_selections", "expected_code", "acceptable_answers", "keywords",
    "tolerance", "acceptable_range", "sample_answer", "solution",
}
QUESTION_PRIVATE_FIELDS = ("correct_answer", "explanation", "grading_config")


def student_view(question: Dict[str, Any]) -> Dict[str, Any]:
    """A question as a student may see it while taking the quiz."""
    question = copy.deepcopy(question)
    for field in QUESTION_PRIVATE_FIELDS:
        question[field] = None
    qd = {k: v for k, v in (question.get("question_data") or {}).items() if k not in ANSWER_KEYS}

    if isinstance(qd.get("items"), list):
        items = [{k: v for k, v in item.items() if k != "order"} if isinstance(item, dict) else item
                 for item in qd["items"]]
        random.shuffle(items)
        qd["items"] = items
    if isinstance(qd.get("test_cases"), list):
        qd["test_cases"] = [
            {k: tc.get(k) for k in ("id", "input", "expected_output", "description")}
            for tc in qd["test_cases"] if isinstance(tc, dict) and not tc.get("is_hidden")
        ]
    question["question_data"] = qd
    return question


async def get_quiz_or_404(quiz_id: str) -> dict:
    quiz = await quiz_crud.get_quiz_by_id(quiz_id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz

async def ensure_quiz_manager(quiz: dict, current_user: User):
    """The quiz author, the course instructor or an admin."""
    if current_user.role == RoleEnum.admin or quiz.get("created_by") == current_user.id:
        return
    course = await course_crud.get_course(quiz["course_id"])
    ensure_course_manager(course or {}, current_user)

def prepare_question(data: Dict[str, Any], question_type: str) -> Dict[str, Any]:
    """
    Decode ``question_data``, move any legacy answer into it and validate the
    result. Raises 400 with the validation errors; returns the warnings under
    ``warnings``.
    """
    question_data = parse_json_field(data.get("question_data"))
    if question_data is None:
        question_data = {}
    if not isinstance(question_data, dict):
        raise HTTPException(status_code=400, detail="question_data must be a JSON object")

    data["question_data"] = question_data
    data["correct_answer"] = parse_json_field(data.get("correct_answer"))
    harmonized = harmonize_question_data({**data, "question_type": question_type})
    if harmonized is not None:
        data["question_data"] = harmonized

    result = validate_question(question_type, data["question_data"])
    if not result.is_valid:
        raise HTTPException(
            status_code=400,
            detail={"message": "Question validation failed", "errors": result.errors, "warnings": result.warnings}
        )
    data["warnings"] = result.warnings
    return data

# Quiz endpoints

@router.post("/", response_model=QuizResponse, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    quiz: QuizCreate,
    current_user: User = Depends(require_instructor_or_admin)
):
    """Create a new quiz - course instructor or admin"""
    course = await course_crud.get_course(quiz.course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    ensure_course_manager(course, current_user)

    created = await quiz_crud.create_quiz(quiz, current_user.id)
    logger.info(f"📝 Quiz '{quiz.title}' created in course {course['code']}")
    return created

@router.get("/available", response_model=List[QuizResponse])
async def get_available_quizzes(current_user: User = Depends(require_student)):
    """Published quizzes in the student's courses, plus public ones"""
    enrollments = await enrollment_crud.get_student_enrollments(current_user.id)
    return await quiz_crud.get_quizzes(
        course_ids=[e["course_id"] for e in enrollments],
        status=QuizStatusEnum.published,
        include_public=True
    )

@router.get("/course/{course_id}", response_model=List[QuizResponse])
async def get_course_quizzes(
    course_id: str,
    current_user: User = Depends(require_any_user)
):
    if current_user.role == RoleEnum.student:
        return await quiz_crud.get_quizzes(course_ids=[course_id], status=QuizStatusEnum.published)
    return await quiz_crud.get_quizzes(course_ids=[course_id])

@router.get("/{quiz_id}", response_model=QuizResponse)
async def get_quiz(
    quiz_id: str,
    current_user: User = Depends(require_any_user)
):
    quiz = await get_quiz_or_404(quiz_id)
    if current_user.role == RoleEnum.student and quiz["status"] != QuizStatusEnum.published.value:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz

@router.put("/{quiz_id}", response_model=QuizResponse)
async def update_quiz(
    quiz_id: str,
    quiz_update: QuizUpdate,
    current_user: User = Depends(require_instructor_or_admin)
):
    quiz = await get_quiz_or_404(quiz_id)
    await ensure_quiz_manager(quiz, current_user)

    update = quiz_update.model_dump(exclude_unset=True)
    if quiz_update.grading_config is not None:
        update["grading_config"] = quiz_update.grading_config.model_dump(mode="json")
    start_date = update.get("start_date", quiz.get("start_date"))
    end_date = update.get("end_date", quiz.get("end_date"))
    if start_date and end_date and end_date <= start_date:
        raise HTTPException(status_code=400, detail="End date must be after start date")
    return await quiz_crud.update_quiz(quiz_id, update)

@router.put("/{quiz_id}/status", response_model=QuizResponse)
async def update_quiz_status(
    quiz_id: str,
    payload: QuizStatusUpdate,
    current_user: User = Depends(require_instructor_or_admin)
):
    quiz = await get_quiz_or_404(quiz_id)
    await ensure_quiz_manager(quiz, current_user)

    if payload.status == QuizStatusEnum.published and not await quiz_crud.get_quiz_questions(quiz_id):
        raise HTTPException(status_code=400, detail="Cannot publish a quiz without questions")
    return await quiz_crud.update_quiz(quiz_id, {"status": payload.status.value})

@router.delete("/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz(
    quiz_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    quiz = await get_quiz_or_404(quiz_id)
    await ensure_quiz_manager(quiz, current_user)
    await quiz_crud.delete_quiz(quiz_id)

# Question endpoints

@router.get("/{quiz_id}/questions", response_model=List[QuestionResponse])
async def get_quiz_questions(
    quiz_id: str,
    current_user: User = Depends(require_any_user)
):
    """Instructors get the full questions; students get them without answer keys"""
    quiz = await get_quiz_or_404(quiz_id)
    questions = await quiz_crud.get_quiz_questions(quiz_id)

    if current_user.role != RoleEnum.student:
        await ensure_quiz_manager(quiz, current_user)
        return questions

    if quiz["status"] != QuizStatusEnum.published.value:
        raise HTTPException(status_code=404, detail="Quiz not found")
    if not quiz.get("is_public") and not await enrollment_crud.is_enrolled(current_user.id, quiz["course_id"]):
        raise HTTPException(status_code=403, detail="You are not enrolled in this course")

    questions = [student_view(q) for q in questions]
    if quiz.get("randomize_questions"):
        random.shuffle(questions)
    return questions

@router.post("/{quiz_id}/questions", response_model=QuestionResponse, status_code=status.HTTP_201_CREATED)
async def add_question(
    quiz_id: str,
    question: QuestionCreate,
    current_user: User = Depends(require_instructor_or_admin)
):
    quiz = await get_quiz_or_404(quiz_id)
    await ensure_quiz_manager(quiz, current_user)

    data = prepare_question(question.model_dump(mode="json"), question.question_type.value)
    warnings = data.pop("warnings")
    created = await quiz_crud.add_question(quiz_id, data, current_user.id)
    return {**created, "warnings": warnings}

@router.post("/{quiz_id}/questions/bulk", response_model=List[QuestionResponse], status_code=status.HTTP_201_CREATED)
async def add_questions_bulk(
    quiz_id: str,
    payload: BulkQuestionCreate,
    current_user: User = Depends(require_instructor_or_admin)
):
    """All questions are validated before any is stored"""
    quiz = await get_quiz_or_404(quiz_id)
    await ensure_quiz_manager(quiz, current_user)

    prepared = []
    for index, question in enumerate(payload.questions, start=1):
        try:
            prepared.append(prepare_question(question.model_dump(mode="json"), question.question_type.value))
        except HTTPException as e:
            if isinstance(e.detail, dict):
                e.detail["question_index"] = index
            raise

    created = []
    for data in prepared:
        warnings = data.pop("warnings")
        created.append({**await quiz_crud.add_question(quiz_id, data, current_user.id), "warnings": warnings})
    return created

@router.put("/{quiz_id}/questions/reorder", response_model=List[QuestionResponse])
async def reorder_questions(
    quiz_id: str,
    payload: QuestionReorder,
    current_user: User = Depends(require_instructor_or_admin)
):
    quiz = await get_quiz_or_404(quiz_id)
    await ensure_quiz_manager(quiz, current_user)

    existing = {q["id"] for q in await quiz_crud.get_quiz_questions(quiz_id)}
    if set(payload.question_ids) != existing or len(payload.question_ids) != len(existing):
        raise HTTPException(status_code=400, detail="question_ids must list every question of the quiz exactly once")
    return await quiz_crud.reorder_questions(quiz_id, payload.question_ids)

@router.put("/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
    question_id: str,
    question_update: QuestionUpdate,
    current_user: User = Depends(require_instructor_or_admin)
):
    question = await quiz_crud.get_question(question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    await ensure_quiz_manager(await get_quiz_or_404(question["quiz_id"]), current_user)

    update = question_update.model_dump(mode="json", exclude_unset=True)
    merged = {**question, **update}
    data = prepare_question(merged, question["question_type"])
    update["question_data"] = data["question_data"]
    if "correct_answer" in update:
        update["correct_answer"] = data["correct_answer"]

    updated = await quiz_crud.update_question(question_id, update)
    return {**updated, "warnings": data["warnings"]}

@router.delete("/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(
    question_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    question = await quiz_crud.get_question(question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    await ensure_quiz_manager(await get_quiz_or_404(question["quiz_id"]), current_user)
    await quiz_crud.delete_question(question_id)

@router.post("/{quiz_id}/harmonize", response_model=HarmonizeReport)
async def harmonize_quiz_answers(
    quiz_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    """Copy legacy correct_answer values into question_data for every question of the quiz"""
    quiz = await get_quiz_or_404(quiz_id)
    await ensure_quiz_manager(quiz, current_user)

    questions = await quiz_crud.get_quiz_questions(quiz_id)
    updated_ids = []
    for question in questions:
        harmonized = harmonize_question_data(question)
        if harmonized is not None:
            await quiz_crud.update_question(question["id"], {"question_data": harmonized})
            updated_ids.append(question["id"])

    logger.info(f"🔧 Harmonized {len(updated_ids)}/{len(questions)} question(s) of quiz {quiz_id}")
    return HarmonizeReport(
        quiz_id=quiz_id,
        questions_checked=len(questions),
        questions_updated=len(updated_ids),
        updated_question_ids=updated_ids,
    )

@router.post("/{quiz_id}/submit", response_model=SubmissionDetail)
async def submit_quiz(
    quiz_id: str,
    submission: QuizSubmitAll,
    current_user: User = Depends(require_student)
):
    """Submit every answer at once - starts, answers and finalizes an attempt"""
    quiz = await get_quiz_or_404(quiz_id)
    result = await attempt_service.submit_all(quiz_id, submission.answers, current_user)
    return await attempt_service.get_student_detail(result, quiz)
