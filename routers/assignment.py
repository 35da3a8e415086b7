import logging
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form
from typing import List, Optional
from datetime import datetime

from crud.course import CourseCRUD
from crud.enrollment import EnrollmentCRUD
from dependencies import (
    ensure_course_manager, require_any_user, require_instructor_or_admin, require_student
)
from models.assignment import AssignmentStatusEnum, SubmissionTypeEnum
from models.base import naive_utc
from models.user import User, RoleEnum
from schemas.assignment import (
    AssignmentCreate, AssignmentGrade, AssignmentResponse, AssignmentStatusUpdate,
    AssignmentSubmissionResponse, AssignmentUpdate
)
from crud.assignment import (
    create_assignment_crud, get_assignments_by_course, get_assignment_by_id,
    update_assignment_crud, delete_assignment_crud, upsert_submission_crud,
    get_submission_by_student_and_assignment, get_submissions_by_assignment,
    get_assignment_submission_by_id, grade_submission_crud
)
from utils.file_upload import save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assignments", tags=["Assignments"])

course_crud = CourseCRUD()
enrollment_crud = EnrollmentCRUD()


async def get_assignment_or_404(assignment_id: str) -> dict:
    assignment = await get_assignment_by_id(assignment_id)
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )
    return assignment

async def ensure_assignment_manager(assignment: dict, current_user: User):
    course = await course_crud.get_course(assignment["course_id"])
    ensure_course_manager(course or {}, current_user)

async def ensure_student_access(assignment: dict, current_user: User):
    """Students only see published assignments of courses they are enrolled in"""
    if (assignment["status"] != AssignmentStatusEnum.published.value
            or not await enrollment_crud.is_enrolled(current_user.id, assignment["course_id"])):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )


# -------------------- ASSIGNMENT CRUD -------------------- #
@router.post("/", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    assignment_data: AssignmentCreate,
    current_user: User = Depends(require_instructor_or_admin)
):
    """Create a new assignment (course instructor or admin)"""
    course = await course_crud.get_course(assignment_data.course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    ensure_course_manager(course, current_user)

    assignment = await create_assignment_crud(assignment_data.model_dump(), current_user.id)
    logger.info(f"📄 Assignment '{assignment_data.title}' created in course {course['code']}")
    return assignment


@router.get("/course/{course_id}", response_model=List[AssignmentResponse])
async def get_course_assignments(
    course_id: str,
    status_filter: Optional[AssignmentStatusEnum] = None,
    current_user: User = Depends(require_any_user)
):
    """Staff see every assignment of the course; students the published ones if enrolled"""
    if current_user.role == RoleEnum.student:
        if not await enrollment_crud.is_enrolled(current_user.id, course_id):
            raise HTTPException(status_code=403, detail="Not enrolled in this course")
        return await get_assignments_by_course(course_id, AssignmentStatusEnum.published)
    return await get_assignments_by_course(course_id, status_filter)


@router.get("/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: str,
    current_user: User = Depends(require_any_user)
):
    assignment = await get_assignment_or_404(assignment_id)
    if current_user.role == RoleEnum.student:
        await ensure_student_access(assignment, current_user)
    return assignment


@router.put("/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: str,
    assignment_update: AssignmentUpdate,
    current_user: User = Depends(require_instructor_or_admin)
):
    assignment = await get_assignment_or_404(assignment_id)
    await ensure_assignment_manager(assignment, current_user)
    return await update_assignment_crud(assignment_id, assignment_update.model_dump(exclude_unset=True))


@router.put("/{assignment_id}/status", response_model=AssignmentResponse)
async def update_assignment_status(
    assignment_id: str,
    payload: AssignmentStatusUpdate,
    current_user: User = Depends(require_instructor_or_admin)
):
    assignment = await get_assignment_or_404(assignment_id)
    await ensure_assignment_manager(assignment, current_user)
    return await update_assignment_crud(assignment_id, {"status": payload.status.value})


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assignment(
    assignment_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    assignment = await get_assignment_or_404(assignment_id)
    await ensure_assignment_manager(assignment, current_user)
    await delete_assignment_crud(assignment_id)


# -------------------- SUBMISSIONS -------------------- #
@router.post("/{assignment_id}/submit", response_model=AssignmentSubmissionResponse)
async def submit_assignment(
    assignment_id: str,
    text_submission: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(require_student)
):
    """
    Submit text and/or files depending on the assignment's submission type.
    Submitting again replaces the current submission and keeps the previous
    one in the resubmission history.
    """
    assignment = await get_assignment_or_404(assignment_id)
    await ensure_student_access(assignment, current_user)

    text = text_submission.strip() if text_submission else None
    files = [f for f in (files or []) if f.filename]
    submission_type = assignment["submission_type"]
    if submission_type == SubmissionTypeEnum.text.value and not text:
        raise HTTPException(status_code=400, detail="This assignment requires a text submission")
    if submission_type == SubmissionTypeEnum.file.value and not files:
        raise HTTPException(status_code=400, detail="This assignment requires a file upload")
    if not text and not files:
        raise HTTPException(status_code=400, detail="Submit text, a file, or both")

    stored = []
    for file in files:
        stored.append(await save_upload(file, assignment.get("allowed_file_types")))

    now = datetime.utcnow()
    submission = await upsert_submission_crud(assignment_id, current_user.id, {
        "text_submission": text,
        "file_submissions": [f.model_dump() for f in stored],
        "is_late": now > naive_utc(assignment["due_date"]),
    })
    logger.info(f"📥 {current_user.username} submitted assignment {assignment_id}")
    return submission


@router.get("/{assignment_id}/submissions", response_model=List[AssignmentSubmissionResponse])
async def get_assignment_submissions(
    assignment_id: str,
    current_user: User = Depends(require_instructor_or_admin)
):
    assignment = await get_assignment_or_404(assignment_id)
    await ensure_assignment_manager(assignment, current_user)
    return await get_submissions_by_assignment(assignment_id)


@router.get("/{assignment_id}/my-submission", response_model=Optional[AssignmentSubmissionResponse])
async def get_my_submission(
    assignment_id: str,
    current_user: User = Depends(require_student)
):
    await get_assignment_or_404(assignment_id)
    return await get_submission_by_student_and_assignment(current_user.id, assignment_id)


@router.put("/submissions/{submission_id}/grade", response_model=AssignmentSubmissionResponse)
async def grade_assignment_submission(
    submission_id: str,
    grade: AssignmentGrade,
    current_user: User = Depends(require_instructor_or_admin)
):
    submission = await get_assignment_submission_by_id(submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    assignment = await get_assignment_or_404(submission["assignment_id"])
    await ensure_assignment_manager(assignment, current_user)

    if grade.score > assignment["max_score"]:
        raise HTTPException(
            status_code=400,
            detail=f"Score must be between 0 and {assignment['max_score']:g}"
        )

    if grade.rubric_scores:
        rubric = assignment.get("rubric") or []
        by_name = {c["criteria"]: c for c in rubric}
        for key, value in grade.rubric_scores.items():
            criterion = by_name.get(key)
            if criterion is None and key.isdigit() and int(key) < len(rubric):
                criterion = rubric[int(key)]
            if criterion is None:
                raise HTTPException(status_code=400, detail=f"Unknown rubric criterion '{key}'")
            if value < 0 or value > criterion["max_score"]:
                raise HTTPException(
                    status_code=400,
                    detail=f"Score for '{criterion['criteria']}' must be between 0 and {criterion['max_score']:g}"
                )

    return await grade_submission_crud(
        submission_id,
        grade.score,
        current_user.id,
        feedback=grade.feedback,
        rubric_scores=grade.rubric_scores
    )
