# schemas/course.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from models.course import EnrollmentStatus

class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    code: str = Field(..., min_length=2, max_length=20)
    instructor_id: Optional[str] = None  # admins may assign any instructor
    is_active: bool = True
    is_public: bool = False

class CourseUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    instructor_id: Optional[str] = None
    is_active: Optional[bool] = None
    is_public: Optional[bool] = None

class CourseResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    code: str
    instructor_id: str
    is_active: bool
    is_public: bool
    created_at: datetime
    updated_at: datetime

class EnrollmentCreate(BaseModel):
    student_id: str

class EnrollmentStatusUpdate(BaseModel):
    status: EnrollmentStatus
    grade: Optional[str] = Field(default=None, max_length=2)

class EnrollmentResponse(BaseModel):
    id: str
    student_id: str
    course_id: str
    enrollment_date: datetime
    completion_date: Optional[datetime] = None
    status: EnrollmentStatus
    grade: Optional[str] = None

class EnrolledStudent(BaseModel):
    enrollment_id: str
    student_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    status: EnrollmentStatus
    enrollment_date: datetime
    grade: Optional[str] = None

class GradebookEntry(BaseModel):
    student_id: str
    full_name: Optional[str] = None
    quiz_average: Optional[float] = None
    quizzes_taken: int = 0
    assignment_average: Optional[float] = None
    assignments_graded: int = 0
    overall: Optional[float] = None
