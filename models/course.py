# models/course.py
from pydantic import Field
from typing import Optional
from datetime import datetime
import enum

from models.base import MongoDBModel

class EnrollmentStatus(str, enum.Enum):
    enrolled = "enrolled"
    completed = "completed"
    dropped = "dropped"

class Course(MongoDBModel):
    title: str
    description: Optional[str] = None
    code: str
    instructor_id: str
    is_active: bool = True
    is_public: bool = False

class Enrollment(MongoDBModel):
    student_id: str
    course_id: str
    enrollment_date: datetime = Field(default_factory=datetime.utcnow)
    completion_date: Optional[datetime] = None
    status: EnrollmentStatus = EnrollmentStatus.enrolled
    grade: Optional[str] = Field(default=None, max_length=2)
