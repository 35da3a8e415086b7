# crud/enrollment.py
from typing import List, Optional, Dict, Any
from datetime import datetime

from database import get_database
from models.base import from_document
from models.course import Enrollment, EnrollmentStatus


class EnrollmentCRUD:

    async def enroll(self, student_id: str, course_id: str) -> Dict[str, Any]:
        """Enroll a student, reactivating a dropped enrollment if there is one."""
        db = await get_database()
        existing = await db.enrollments.find_one({"student_id": student_id, "course_id": course_id})

        if existing:
            if existing["status"] == EnrollmentStatus.dropped.value:
                return await self.update_status(existing["_id"], EnrollmentStatus.enrolled)
            return from_document(existing)

        document = Enrollment(student_id=student_id, course_id=course_id).to_document()
        await db.enrollments.insert_one(document)
        return from_document(document)

    async def get_enrollment(self, enrollment_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.enrollments.find_one({"_id": enrollment_id}))

    async def get_student_enrollment(self, student_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        db = await get_database()
        return from_document(await db.enrollments.find_one({"student_id": student_id, "course_id": course_id}))

    async def is_enrolled(self, student_id: str, course_id: str) -> bool:
        enrollment = await self.get_student_enrollment(student_id, course_id)
        return bool(enrollment) and enrollment["status"] != EnrollmentStatus.dropped.value

    async def get_student_enrollments(self, student_id: str, include_dropped: bool = False) -> List[Dict[str, Any]]:
        db = await get_database()
        query: Dict[str, Any] = {"student_id": student_id}
        if not include_dropped:
            query["status"] = {"$ne": EnrollmentStatus.dropped.value}
        enrollments = await db.enrollments.find(query).to_list(length=500)
        return [from_document(e) for e in enrollments]

    async def get_course_enrollments(self, course_id: str, status: Optional[EnrollmentStatus] = None) -> List[Dict[str, Any]]:
        db = await get_database()
        query: Dict[str, Any] = {"course_id": course_id}
        if status:
            query["status"] = status.value
        enrollments = await db.enrollments.find(query).sort("enrollment_date", 1).to_list(length=1000)
        return [from_document(e) for e in enrollments]

    async def update_status(
        self,
        enrollment_id: str,
        status: EnrollmentStatus,
        grade: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        db = await get_database()
        now = datetime.utcnow()
        update: Dict[str, Any] = {
            "status": status.value,
            "completion_date": now if status == EnrollmentStatus.completed else None,
            "updated_at": now,
        }
        if grade is not None:
            update["grade"] = grade

        result = await db.enrollments.update_one({"_id": enrollment_id}, {"$set": update})
        if result.matched_count == 0:
            return None
        return await self.get_enrollment(enrollment_id)
