# crud/course.py
from typing import List, Optional, Dict, Any
from datetime import datetime

from database import get_database
from models.base import from_document
from models.course import Course
from schemas.course import CourseCreate, CourseUpdate


class CourseCRUD:

    async def create_course(self, course_data: CourseCreate, instructor_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()

        if await db.courses.find_one({"code": course_data.code}):
            return None

        course = Course(
            **course_data.model_dump(exclude={"instructor_id"}),
            instructor_id=instructor_id
        )
        document = course.to_document()
        await db.courses.insert_one(document)
        return from_document(document)

    async def get_course(self, course_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.courses.find_one({"_id": course_id}))

    async def get_courses(
        self,
        instructor_id: Optional[str] = None,
        active_only: bool = False,
        course_ids: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        db = await get_database()
        query: Dict[str, Any] = {}
        if instructor_id:
            query["instructor_id"] = instructor_id
        if active_only:
            query["is_active"] = True
        if course_ids is not None:
            query["_id"] = {"$in": course_ids}

        courses = await db.courses.find(query).sort("created_at", -1).to_list(length=500)
        return [from_document(course) for course in courses]

    async def update_course(self, course_id: str, update: CourseUpdate) -> Optional[Dict[str, Any]]:
        db = await get_database()
        update_data = update.model_dump(exclude_unset=True)
        update_data["updated_at"] = datetime.utcnow()

        result = await db.courses.update_one({"_id": course_id}, {"$set": update_data})
        if result.matched_count == 0:
            return None
        return await self.get_course(course_id)

    async def delete_course(self, course_id: str) -> bool:
        db = await get_database()
        result = await db.courses.delete_one({"_id": course_id})
        if result.deleted_count:
            await db.enrollments.delete_many({"course_id": course_id})
        return result.deleted_count > 0
