# crud/quiz.py
from database import get_database
from models.base import from_document
from models.quiz import Quiz, QuizQuestion, QuizStatusEnum
from schemas.quiz import QuizCreate
from typing import List, Optional, Dict, Any
import datetime


class QuizCRUD:

    async def create_quiz(self, quiz_data: QuizCreate, created_by: str) -> Dict[str, Any]:
        db = await get_database()
        data = quiz_data.model_dump(exclude_none=True)
        if quiz_data.grading_config:
            data["grading_config"] = quiz_data.grading_config.model_dump(mode="json")
        quiz = Quiz(**data, created_by=created_by)
        document = quiz.to_document()
        await db.quizzes.insert_one(document)
        return from_document(document)

    async def get_quiz_by_id(self, quiz_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.quizzes.find_one({"_id": quiz_id}))

    async def get_quizzes(
        self,
        course_ids: Optional[List[str]] = None,
        status: Optional[QuizStatusEnum] = None,
        created_by: Optional[str] = None,
        include_public: bool = False
    ) -> List[Dict[str, Any]]:
        db = await get_database()
        clauses: List[Dict[str, Any]] = []
        if course_ids is not None:
            scope = {"course_id": {"$in": course_ids}}
            clauses.append({"$or": [scope, {"is_public": True}]} if include_public else scope)
        if status:
            clauses.append({"status": status.value})
        if created_by:
            clauses.append({"created_by": created_by})
        query = {"$and": clauses} if clauses else {}

        quizzes = await db.quizzes.find(query).sort("created_at", -1).to_list(length=1000)
        return [from_document(quiz) for quiz in quizzes]

    async def update_quiz(self, quiz_id: str, update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        db = await get_database()
        update["updated_at"] = datetime.datetime.utcnow()
        result = await db.quizzes.update_one({"_id": quiz_id}, {"$set": update})
        if result.matched_count == 0:
            return None
        return await self.get_quiz_by_id(quiz_id)

    async def delete_quiz(self, quiz_id: str) -> bool:
        db = await get_database()
        result = await db.quizzes.delete_one({"_id": quiz_id})
        if not result.deleted_count:
            return False

        # Cascade to questions, submissions and attempts
        await db.quiz_questions.delete_many({"quiz_id": quiz_id})
        submission_ids = [
            s["_id"] for s in await db.quiz_submissions.find({"quiz_id": quiz_id}, {"_id": 1}).to_list(length=None)
        ]
        if submission_ids:
            await db.quiz_attempts.delete_many({"submission_id": {"$in": submission_ids}})
            await db.quiz_submissions.delete_many({"quiz_id": quiz_id})
        return True

    # -- questions ----------------------------------------------------------

    async def add_question(self, quiz_id: str, question_data: Dict[str, Any], created_by: str) -> Dict[str, Any]:
        db = await get_database()
        if question_data.get("order") is None:
            question_data["order"] = await db.quiz_questions.count_documents({"quiz_id": quiz_id}) + 1

        question = QuizQuestion(**question_data, quiz_id=quiz_id, created_by=created_by)
        document = question.to_document()
        await db.quiz_questions.insert_one(document)
        return from_document(document)

    async def get_question(self, question_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.quiz_questions.find_one({"_id": question_id}))

    async def get_quiz_questions(self, quiz_id: str) -> List[Dict[str, Any]]:
        db = await get_database()
        questions = await db.quiz_questions.find({"quiz_id": quiz_id}).sort("order", 1).to_list(length=500)
        return [from_document(question) for question in questions]

    async def update_question(self, question_id: str, update: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        db = await get_database()
        update["updated_at"] = datetime.datetime.utcnow()
        result = await db.quiz_questions.update_one({"_id": question_id}, {"$set": update})
        if result.matched_count == 0:
            return None
        return await self.get_question(question_id)

    async def delete_question(self, question_id: str) -> bool:
        db = await get_database()
        result = await db.quiz_questions.delete_one({"_id": question_id})
        return result.deleted_count > 0

    async def reorder_questions(self, quiz_id: str, question_ids: List[str]) -> List[Dict[str, Any]]:
        db = await get_database()
        now = datetime.datetime.utcnow()
        for position, question_id in enumerate(question_ids, start=1):
            await db.quiz_questions.update_one(
                {"_id": question_id, "quiz_id": quiz_id},
                {"$set": {"order": position, "updated_at": now}}
            )
        return await self.get_quiz_questions(quiz_id)
