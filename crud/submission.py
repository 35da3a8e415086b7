# crud/submission.py
from database import get_database
from models.base import from_document
from models.quiz import QuizAttempt, QuizSubmission, SubmissionStatusEnum
from typing import List, Optional, Dict, Any
import datetime


class SubmissionCRUD:
    """Quiz submissions and the per-question attempts that belong to them."""

    async def create_submission(
        self,
        quiz_id: str,
        student_id: str,
        attempt_number: int,
        time_limit: Optional[int] = None
    ) -> Dict[str, Any]:
        db = await get_database()
        submission = QuizSubmission(quiz_id=quiz_id, student_id=student_id, attempt_number=attempt_number)
        if time_limit:
            submission.end_time = submission.started_at + datetime.timedelta(minutes=time_limit)
        document = submission.to_document()
        await db.quiz_submissions.insert_one(document)
        return from_document(document)

    async def get_submission(self, submission_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.quiz_submissions.find_one({"_id": submission_id}))

    async def get_in_progress(self, quiz_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.quiz_submissions.find_one({
            "quiz_id": quiz_id,
            "student_id": student_id,
            "status": SubmissionStatusEnum.in_progress.value,
        }))

    async def count_attempts(self, quiz_id: str, student_id: str) -> int:
        db = await get_database()
        return await db.quiz_submissions.count_documents({"quiz_id": quiz_id, "student_id": student_id})

    async def get_submissions(self, query: Dict[str, Any], limit: int = 1000) -> List[Dict[str, Any]]:
        db = await get_database()
        submissions = await db.quiz_submissions.find(query).sort("started_at", -1).to_list(length=limit)
        return [from_document(s) for s in submissions]

    async def update_submission(self, submission_id: str, update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        db = await get_database()
        update["updated_at"] = datetime.datetime.utcnow()
        result = await db.quiz_submissions.update_one({"_id": submission_id}, {"$set": update})
        if result.matched_count == 0:
            return None
        return await self.get_submission(submission_id)

    # -- attempts -----------------------------------------------------------

    async def create_attempt(self, attempt: QuizAttempt) -> Dict[str, Any]:
        db = await get_database()
        document = attempt.to_document()
        await db.quiz_attempts.insert_one(document)
        return from_document(document)

    async def get_attempt(self, submission_id: str, question_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.quiz_attempts.find_one({
            "submission_id": submission_id,
            "question_id": question_id,
        }))

    async def get_attempts(self, submission_id: str) -> List[Dict[str, Any]]:
        db = await get_database()
        attempts = await db.quiz_attempts.find({"submission_id": submission_id}).sort("created_at", 1).to_list(length=500)
        return [from_document(a) for a in attempts]

    async def get_attempts_for_submissions(self, submission_ids: List[str]) -> List[Dict[str, Any]]:
        db = await get_database()
        attempts = await db.quiz_attempts.find({"submission_id": {"$in": submission_ids}}).to_list(length=None)
        return [from_document(a) for a in attempts]

    async def update_attempt(self, attempt_id: str, update: Dict[str, Any]) -> None:
        db = await get_database()
        update["updated_at"] = datetime.datetime.utcnow()
        await db.quiz_attempts.update_one({"_id": attempt_id}, {"$set": update})
