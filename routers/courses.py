import logging
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional

from crud.assignment import get_assignments_by_course, get_submissions_by_student
from crud.course import CourseCRUD
from crud.enrollment import EnrollmentCRUD
from crud.quiz import QuizCRUD
from crud.submission import SubmissionCRUD
from crud.user import UserCRUD
from database import get_database
from schemas.course import (
    CourseResponse, CourseCreate, CourseUpdate, EnrolledStudent,
    EnrollmentResponse, EnrollmentCreate, EnrollmentStatusUpdate, GradebookEntry
)
from dependencies import (
    ensure_course_manager, require_any_user, require_instructor_or_admin, require_student
)
from models.course import EnrollmentStatus
from models.quiz import SubmissionStatusEnum
from models.user import User, RoleEnum

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])

def get_course_crud():
    return CourseCRUD()

def get_enrollment_crud():
    return EnrollmentCRUD()

async def get_course_or_404(course_id: str, crud: CourseCRUD) -> dict:
    course = await crud.get_course(course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course

def _average(values: List[float]) -> Optional[float]:
    return round(sum(values) / len(values), 2) if values else None

# Course endpoints

@router.post(
    "/",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_course(
    course: CourseCreate,
    crud: CourseCRUD = Depends(get_course_crud),
    db=Depends(get_database),
    current_user: User = Depends(require_instructor_or_admin)
):
    # Instructors always own what they create; admins may assign an instructor
    instructor_id = current_user.id
    if current_user.role == RoleEnum.admin and course.instructor_id:
        instructor = await UserCRUD(db).get_user_by_id(course.instructor_id)
        if not instructor or instructor.role != RoleEnum.instructor:
            raise HTTPException(status_code=400, detail="instructor_id must reference an instructor")
        instructor_id = instructor.id

    course_data = await crud.create_course(course, instructor_id)
    if not course_data:
        raise HTTPException(status_code=409, detail="A course with this code already exists")
    logger.info(f"📚 Course {course.code} created by {current_user.username}")
    return CourseResponse(**course_data)

@router.get("/", response_model=List[CourseResponse])
async def get_courses(
    crud: CourseCRUD = Depends(get_course_crud),
    current_user: User = Depends(require_any_user)
):
    """Admins see every course, instructors the ones they teach, students the active ones."""
    if current_user.role == RoleEnum.admin:
        courses_data = await crud.get_courses()
    elif current_user.role == RoleEnum.instructor:
        courses_data = await crud.get_courses(instructor_id=current_user.id)
    else:
        courses_data = await crud.get_courses(active_only=True)
    return [CourseResponse(**course_data) for course_data in courses_data]

@router.get("/my-courses", response_model=List[CourseResponse])
async def get_my_courses(
    crud: CourseCRUD = Depends(get_course_crud),
    enrollment_crud: EnrollmentCRUD = Depends(get_enrollment_crud),
    current_user: User = Depends(require_student)
):
    enrollments = await enrollment_crud.get_student_enrollments(current_user.id)
    courses_data = await crud.get_courses(course_ids=[e["course_id"] for e in enrollments])
    return [CourseResponse(**course_data) for course_data in courses_data]

@router.get("/{course_id}", response_model=CourseResponse)
async def get_course(
    course_id: str,
    crud: CourseCRUD = Depends(get_course_crud),
    current_user: User = Depends(require_any_user)
):
    course_data = await get_course_or_404(course_id, crud)
    if (current_user.role == RoleEnum.instructor and
            course_data["instructor_id"] != current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view courses assigned to you"
        )
    return CourseResponse(**course_data)

@router.put("/{course_id}", response_model=CourseResponse)
async def update_course(
    course_id: str,
    course_update: CourseUpdate,
    crud: CourseCRUD = Depends(get_course_crud),
    current_user: User = Depends(require_instructor_or_admin)
):
    course_data = await get_course_or_404(course_id, crud)
    ensure_course_manager(course_data, current_user)
    if course_update.instructor_id is not None and current_user.role != RoleEnum.admin:
        raise HTTPException(status_code=403, detail="Only an admin can reassign a course")

    return CourseResponse(**await crud.update_course(course_id, course_update))

@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: str,
    crud: CourseCRUD = Depends(get_course_crud),
    current_user: User = Depends(require_instructor_or_admin)
):
    course_data = await get_course_or_404(course_id, crud)
    ensure_course_manager(course_data, current_user)
    await crud.delete_course(course_id)
    logger.info(f"🗑️ Course {course_data['code']} deleted by {current_user.username}")

# Enrollment endpoints

@router.post("/{course_id}/enroll", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
async def enroll_self(
    course_id: str,
    crud: CourseCRUD = Depends(get_course_crud),
    enrollment_crud: EnrollmentCRUD = Depends(get_enrollment_crud),
    current_user: User = Depends(require_student)
):
    """Enroll the current student in an active course"""
    course_data = await get_course_or_404(course_id, crud)
    if not course_data["is_active"]:
        raise HTTPException(status_code=400, detail="Course is not active")
    if await enrollment_crud.is_enrolled(current_user.id, course_id):
        raise HTTPException(status_code=400, detail="Already enrolled in this course")

    return EnrollmentResponse(**await enrollment_crud.enroll(current_user.id, course_id))

@router.post("/{course_id}/enrollments", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
async def enroll_student(
    course_id: str,
    enrollment: EnrollmentCreate,
    crud: CourseCRUD = Depends(get_course_crud),
    enrollment_crud: EnrollmentCRUD = Depends(get_enrollment_crud),
    db=Depends(get_database),
    current_user: User = Depends(require_instructor_or_admin)
):
    """Enroll a student by id - course instructor or admin"""
    course_data = await get_course_or_404(course_id, crud)
    ensure_course_manager(course_data, current_user)

    student = await UserCRUD(db).get_user_by_id(enrollment.student_id)
    if not student or student.role != RoleEnum.student:
        raise HTTPException(status_code=404, detail="Student not found")

    return EnrollmentResponse(**await enrollment_crud.enroll(student.id, course_id))

@router.put("/enrollments/{enrollment_id}/status", response_model=EnrollmentResponse)
async def update_enrollment_status(
    enrollment_id: str,
    payload: EnrollmentStatusUpdate,
    crud: CourseCRUD = Depends(get_course_crud),
    enrollment_crud: EnrollmentCRUD = Depends(get_enrollment_crud),
    current_user: User = Depends(require_instructor_or_admin)
):
    enrollment = await enrollment_crud.get_enrollment(enrollment_id)
    if not enrollment:
        raise HTTPException(status_code=404, detail="Enrollment not found")
    ensure_course_manager(await get_course_or_404(enrollment["course_id"], crud), current_user)

    updated = await enrollment_crud.update_status(enrollment_id, payload.status, payload.grade)
    return EnrollmentResponse(**updated)

@router.get("/{course_id}/students", response_model=List[EnrolledStudent])
async def get_course_students(
    course_id: str,
    status_filter: Optional[EnrollmentStatus] = None,
    crud: CourseCRUD = Depends(get_course_crud),
    enrollment_crud: EnrollmentCRUD = Depends(get_enrollment_crud),
    db=Depends(get_database),
    current_user: User = Depends(require_instructor_or_admin)
):
    ensure_course_manager(await get_course_or_404(course_id, crud), current_user)

    enrollments = await enrollment_crud.get_course_enrollments(course_id, status_filter)
    users = await UserCRUD(db).get_users_by_ids([e["student_id"] for e in enrollments])
    students = []
    for enrollment in enrollments:
        user = users.get(enrollment["student_id"])
        students.append(EnrolledStudent(
            enrollment_id=enrollment["id"],
            student_id=enrollment["student_id"],
            full_name=user.full_name if user else None,
            email=user.email if user else None,
            status=enrollment["status"],
            enrollment_date=enrollment["enrollment_date"],
            grade=enrollment.get("grade"),
        ))
    return students

@router.get("/{course_id}/gradebook", response_model=List[GradebookEntry])
async def get_course_gradebook(
    course_id: str,
    crud: CourseCRUD = Depends(get_course_crud),
    enrollment_crud: EnrollmentCRUD = Depends(get_enrollment_crud),
    db=Depends(get_database),
    current_user: User = Depends(require_instructor_or_admin)
):
    """
    Per student: the average of their best percentage on each quiz of the
    course, the average of their graded assignment scores (as a percentage of
    each assignment's max score), and the mean of the two.
    """
    ensure_course_manager(await get_course_or_404(course_id, crud), current_user)

    enrollments = [
        e for e in await enrollment_crud.get_course_enrollments(course_id)
        if e["status"] != EnrollmentStatus.dropped.value
    ]
    users = await UserCRUD(db).get_users_by_ids([e["student_id"] for e in enrollments])
    quiz_ids = [q["id"] for q in await QuizCRUD().get_quizzes(course_ids=[course_id])]
    assignments = {a["id"]: a for a in await get_assignments_by_course(course_id)}
    submissions = await SubmissionCRUD().get_submissions({
        "quiz_id": {"$in": quiz_ids},
        "status": {"$ne": SubmissionStatusEnum.in_progress.value},
    }, limit=None)

    gradebook = []
    for enrollment in enrollments:
        student_id = enrollment["student_id"]
        best = {}
        for s in submissions:
            if s["student_id"] == student_id:
                best[s["quiz_id"]] = max(best.get(s["quiz_id"], 0), s.get("percentage", 0))

        assignment_scores = []
        for s in await get_submissions_by_student(student_id, list(assignments)):
            assignment = assignments[s["assignment_id"]]
            if s.get("score") is not None and assignment["max_score"]:
                assignment_scores.append(s["score"] / assignment["max_score"] * 100)

        quiz_average = _average(list(best.values()))
        assignment_average = _average(assignment_scores)
        user = users.get(student_id)
        gradebook.append(GradebookEntry(
            student_id=student_id,
            full_name=user.full_name if user else None,
            quiz_average=quiz_average,
            quizzes_taken=len(best),
            assignment_average=assignment_average,
            assignments_graded=len(assignment_scores),
            overall=_average([v for v in (quiz_average, assignment_average) if v is not None]),
        ))
    return gradebook
