from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from models.quiz import SubmissionStatusEnum
from models.user import User
from schemas.quiz import (
    AnswerResult, AnswerSubmit, BulkAnswerSubmit, SubmissionDetail, SubmissionResponse
)
from dependencies import require_student
from services.quiz_attempts import QuizAttemptService, deadline_passed, results_visible

router = APIRouter(prefix="/quiz-attempts", tags=["Quiz Attempts"])

attempt_service = QuizAttemptService()


@router.post("/start/{quiz_id}", response_model=SubmissionResponse)
async def start_quiz_attempt(
    quiz_id: str,
    current_user: User = Depends(require_student)
):
    """Start a new attempt, or resume the one already in progress"""
    submission, _ = await attempt_service.start_attempt(quiz_id, current_user)
    return submission

@router.post("/{submission_id}/answer/{question_id}", response_model=AnswerResult, status_code=status.HTTP_201_CREATED)
async def answer_question(
    submission_id: str,
    question_id: str,
    payload: AnswerSubmit,
    current_user: User = Depends(require_student)
):
    return await attempt_service.answer_question(submission_id, question_id, payload.answer, current_user)

@router.post("/{submission_id}/answers", response_model=List[AnswerResult])
async def answer_questions_bulk(
    submission_id: str,
    payload: BulkAnswerSubmit,
    current_user: User = Depends(require_student)
):
    """Answer several questions at once; questions already answered are skipped"""
    answers = {item.question_id: item.answer for item in payload.answers}
    return await attempt_service.bulk_answer(submission_id, answers, current_user)

@router.post("/{submission_id}/submit", response_model=SubmissionResponse)
async def submit_attempt(
    submission_id: str,
    current_user: User = Depends(require_student)
):
    return await attempt_service.submit(submission_id, current_user)

@router.get("/{submission_id}/status")
async def get_attempt_status(
    submission_id: str,
    current_user: User = Depends(require_student)
):
    submission, quiz = await attempt_service.get_owned_submission(submission_id, current_user)
    attempts = await attempt_service.submission_crud.get_attempts(submission_id)
    questions = await attempt_service.quiz_crud.get_quiz_questions(quiz["id"])
    return {
        "submission_id": submission_id,
        "status": submission["status"],
        "answered_question_ids": [a["question_id"] for a in attempts],
        "total_questions": len(questions),
        "started_at": submission["started_at"],
        "end_time": submission.get("end_time"),
        "time_expired": deadline_passed(submission),
    }

@router.get("/{submission_id}/results", response_model=SubmissionDetail)
async def get_attempt_results(
    submission_id: str,
    current_user: User = Depends(require_student)
):
    """
    Results become visible once the attempt is finished and either the quiz
    shows results immediately, an instructor has graded it, or the quiz is
    completed. Correct answers are only included when the quiz shows them.
    """
    submission, quiz = await attempt_service.get_owned_submission(submission_id, current_user)
    if submission["status"] == SubmissionStatusEnum.in_progress.value:
        raise HTTPException(status_code=400, detail="Submission is still in progress")
    if not results_visible(submission, quiz):
        raise HTTPException(status_code=403, detail="Results are not available yet")

    return await attempt_service.get_student_detail(submission, quiz)

@router.get("/history", response_model=List[SubmissionResponse])
async def get_attempt_history(current_user: User = Depends(require_student)):
    return await attempt_service.submission_crud.get_submissions({"student_id": current_user.id})
