import logging
from fastapi import APIRouter, Depends
from typing import Any, Dict, List, Optional

from crud.course import CourseCRUD
from crud.quiz import QuizCRUD
from models.quiz import GradeStatusEnum, SubmissionStatusEnum
from models.user import User, RoleEnum
from schemas.grading import FeedbackUpdate, ManualGradeRequest, QuizAnalytics
from schemas.quiz import SubmissionDetail, SubmissionResponse
from dependencies import ensure_course_manager, require_instructor_or_admin
from routers.quiz import ensure_quiz_manager, get_quiz_or_404
from services.quiz_attempts import QuizAttemptService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/grading", tags=["Grading"])

attempt_service = QuizAttemptService()
quiz_crud = QuizCRUD()
course_crud = CourseCRUD()


async def _managed_submission(submission_id: str, current_user: User) -> dict:
    submission = await attempt_service.get_submission(submission_id)
    await ensure_quiz_manager(await get_quiz_or_404(submission["quiz_id"]), current_user)
    return submission


@router.get("/pending", response_model=List[SubmissionResponse])
async def get_pending_submissions(
    course_id: Optional[str] = None,
    current_user: User = Depends(require_instructor_or_admin)
):
    """Finished submissions still waiting for a manual grade"""
    if course_id:
        course = await course_crud.get_course(course_id)
        ensure_course_manager(course or {}, current_user)
        course_ids = [course_id]
    elif current_user.role == RoleEnum.admin:
        course_ids = None
    else:
        course_ids = [c["id"] for c in await course_crud.get_courses(instructor_id=current_user.id)]

    quizzes = await quiz_crud.get_quizzes(course_ids=course_ids)
    query: Dict[str, Any] = {
        "grade_status": GradeStatusEnum.pending.value,
        "status": {"$ne": SubmissionStatusEnum.in_progress.value},
    }
    if course_ids is not None:
        query["quiz_id"] = {"$in": [q["id"] for q in quizzes]}
    return await attempt_service.submission_crud.get_submissions(query)

@router.get("/submissions/{submission_id}", response_model=SubmissionDetail)
async def get_submission_detail(
    submission_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    submission = await _managed_submission(submission_id, current_user)
    return await attempt_service.get_detail(submission)

@router.post("/submissions/{submission_id}/grade", response_model=SubmissionDetail)
async def grade_submission(
    submission_id: str,
    payload: ManualGradeRequest,
    current_user: User = Depends(require_instructor_or_admin)
):
    await _managed_submission(submission_id, current_user)
    graded = await attempt_service.manual_grade(submission_id, payload.grades, current_user, payload.feedback)
    return await attempt_service.get_detail(graded)

@router.post("/submissions/{submission_id}/regrade", response_model=SubmissionDetail)
async def regrade_submission(
    submission_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    """Re-run automatic grading, e.g. after harmonizing answers or changing the grading config"""
    await _managed_submission(submission_id, current_user)
    return await attempt_service.get_detail(await attempt_service.regrade(submission_id))

@router.put("/submissions/{submission_id}/feedback", response_model=SubmissionResponse)
async def update_submission_feedback(
    submission_id: str,
    payload: FeedbackUpdate,
    current_user: User = Depends(require_instructor_or_admin)
):
    await _managed_submission(submission_id, current_user)
    return await attempt_service.update_feedback(submission_id, payload.feedback)

@router.get("/quizzes/{quiz_id}/submissions", response_model=List[SubmissionResponse])
async def get_quiz_submissions(
    quiz_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    await ensure_quiz_manager(await get_quiz_or_404(quiz_id), current_user)
    return await attempt_service.submission_crud.get_submissions({"quiz_id": quiz_id})

@router.get("/quizzes/{quiz_id}/analytics", response_model=QuizAnalytics)
async def get_quiz_analytics(
    quiz_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    await ensure_quiz_manager(await get_quiz_or_404(quiz_id), current_user)
    return await attempt_service.analytics(quiz_id)
