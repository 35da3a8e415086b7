from datetime import datetime
from typing import Any, Dict, List, Optional

from database import get_database
from models.assignment import (
    Assignment, AssignmentStatusEnum, AssignmentSubmission, AssignmentSubmissionStatusEnum
)
from models.base import from_document


# Assignment CRUD Operations
async def create_assignment_crud(assignment_data: dict, created_by: str):
    db = await get_database()
    assignment = Assignment(**assignment_data, created_by=created_by)
    document = assignment.to_document()
    await db.assignments.insert_one(document)
    return from_document(document)


async def get_assignments_by_course(course_id: str, status: Optional[AssignmentStatusEnum] = None):
    db = await get_database()
    query: Dict[str, Any] = {"course_id": course_id}
    if status:
        query["status"] = status.value
    else:
        query["status"] = {"$ne": AssignmentStatusEnum.removed.value}
    assignments = await db.assignments.find(query).sort("due_date", 1).to_list(length=500)
    return [from_document(assignment) for assignment in assignments]


async def get_assignment_by_id(assignment_id: str):
    db = await get_database()
    return from_document(await db.assignments.find_one({"_id": assignment_id}))


async def update_assignment_crud(assignment_id: str, update_data: dict):
    db = await get_database()
    update_data["updated_at"] = datetime.utcnow()
    result = await db.assignments.update_one(
        {"_id": assignment_id},
        {"$set": update_data}
    )
    if result.matched_count == 0:
        return None
    return await get_assignment_by_id(assignment_id)


async def delete_assignment_crud(assignment_id: str):
    db = await get_database()
    result = await db.assignments.delete_one({"_id": assignment_id})
    if result.deleted_count:
        await db.assignment_submissions.delete_many({"assignment_id": assignment_id})
    return result.deleted_count > 0


# Submission CRUD Operations
async def upsert_submission_crud(assignment_id: str, student_id: str, submission_data: dict):
    """
    Store a student's submission. A student keeps one submission per assignment;
    submitting again archives the previous version into ``resubmissions``.
    """
    db = await get_database()
    existing = await db.assignment_submissions.find_one({
        "assignment_id": assignment_id,
        "student_id": student_id
    })

    if not existing:
        submission = AssignmentSubmission(
            assignment_id=assignment_id,
            student_id=student_id,
            **submission_data
        )
        document = submission.to_document()
        await db.assignment_submissions.insert_one(document)
        return from_document(document)

    previous = {
        "submitted_at": existing.get("submitted_at"),
        "text_submission": existing.get("text_submission"),
        "file_submissions": existing.get("file_submissions", []),
        "is_late": existing.get("is_late", False),
        "score": existing.get("score"),
    }
    now = datetime.utcnow()
    update_data = {
        "text_submission": submission_data.get("text_submission"),
        "file_submissions": submission_data.get("file_submissions", []),
        "is_late": submission_data.get("is_late", False),
        "status": AssignmentSubmissionStatusEnum.submitted.value,
        "submitted_at": now,
        "score": None,
        "feedback": None,
        "rubric_scores": None,
        "graded_by": None,
        "graded_at": None,
        "updated_at": now,
    }
    await db.assignment_submissions.update_one(
        {"_id": existing["_id"]},
        {"$set": update_data, "$push": {"resubmissions": previous}}
    )
    return await get_assignment_submission_by_id(existing["_id"])


async def get_submission_by_student_and_assignment(student_id: str, assignment_id: str):
    db = await get_database()
    submission = await db.assignment_submissions.find_one({
        "student_id": student_id,
        "assignment_id": assignment_id
    })
    return from_document(submission)


async def get_submissions_by_assignment(assignment_id: str) -> List[dict]:
    db = await get_database()
    submissions = await db.assignment_submissions.find(
        {"assignment_id": assignment_id}
    ).sort("submitted_at", 1).to_list(length=1000)
    return [from_document(submission) for submission in submissions]


async def get_submissions_by_student(student_id: str, assignment_ids: Optional[List[str]] = None) -> List[dict]:
    db = await get_database()
    query: Dict[str, Any] = {"student_id": student_id}
    if assignment_ids is not None:
        query["assignment_id"] = {"$in": assignment_ids}
    submissions = await db.assignment_submissions.find(query).to_list(length=1000)
    return [from_document(submission) for submission in submissions]


async def get_assignment_submission_by_id(submission_id: str):
    db = await get_database()
    return from_document(await db.assignment_submissions.find_one({"_id": submission_id}))


async def grade_submission_crud(
    submission_id: str,
    score: float,
    graded_by: str,
    feedback: str = None,
    rubric_scores: Optional[Dict[str, float]] = None
):
    db = await get_database()
    now = datetime.utcnow()
    update_data = {
        "score": score,
        "feedback": feedback,
        "rubric_scores": rubric_scores,
        "status": AssignmentSubmissionStatusEnum.graded.value,
        "graded_by": graded_by,
        "graded_at": now,
        "updated_at": now
    }
    result = await db.assignment_submissions.update_one(
        {"_id": submission_id},
        {"$set": update_data}
    )
    if result.matched_count == 0:
        return None
    return await get_assignment_submission_by_id(submission_id)
