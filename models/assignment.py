# models/assignment.py
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum

from models.base import MongoDBModel

class SubmissionTypeEnum(str, Enum):
    file = "file"
    text = "text"
    both = "both"

class AssignmentStatusEnum(str, Enum):
    draft = "draft"
    published = "published"
    completed = "completed"
    removed = "removed"

class AssignmentSubmissionStatusEnum(str, Enum):
    submitted = "submitted"
    graded = "graded"
    returned = "returned"

class RubricCriterion(BaseModel):
    criteria: str
    max_score: float = Field(..., ge=0)
    description: Optional[str] = None

class FileSubmission(BaseModel):
    filename: str
    originalname: str
    mimetype: str
    size: int
    path: str

class Assignment(MongoDBModel):
    course_id: str
    created_by: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    description: str
    due_date: datetime
    max_score: float = Field(default=100, ge=0, le=1000)
    submission_type: SubmissionTypeEnum = SubmissionTypeEnum.both
    allowed_file_types: Optional[List[str]] = None
    rubric: Optional[List[RubricCriterion]] = None
    status: AssignmentStatusEnum = AssignmentStatusEnum.draft

class AssignmentSubmission(MongoDBModel):
    assignment_id: str
    student_id: str
    status: AssignmentSubmissionStatusEnum = AssignmentSubmissionStatusEnum.submitted
    submitted_at: datetime = Field(default_factory=datetime.utcnow)
    text_submission: Optional[str] = None
    file_submissions: List[FileSubmission] = Field(default_factory=list)
    resubmissions: List[dict] = Field(default_factory=list)
    is_late: bool = False
    score: Optional[float] = None
    feedback: Optional[str] = None
    rubric_scores: Optional[Dict[str, float]] = None
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
