# schemas/assignment.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from datetime import datetime

from models.base import UTCDatetime
from models.assignment import (
    AssignmentStatusEnum, AssignmentSubmissionStatusEnum, FileSubmission, RubricCriterion,
    SubmissionTypeEnum
)

class AssignmentCreate(BaseModel):
    course_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    due_date: UTCDatetime
    max_score: float = Field(default=100, ge=0, le=1000)
    submission_type: SubmissionTypeEnum = SubmissionTypeEnum.both
    allowed_file_types: Optional[List[str]] = None
    rubric: Optional[List[RubricCriterion]] = None

class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[UTCDatetime] = None
    max_score: Optional[float] = Field(default=None, ge=0, le=1000)
    submission_type: Optional[SubmissionTypeEnum] = None
    allowed_file_types: Optional[List[str]] = None
    rubric: Optional[List[RubricCriterion]] = None

    model_config = ConfigDict(use_enum_values=True)

class AssignmentStatusUpdate(BaseModel):
    status: AssignmentStatusEnum

class AssignmentResponse(BaseModel):
    id: str
    course_id: str
    created_by: Optional[str] = None
    title: str
    description: str
    due_date: datetime
    max_score: float
    submission_type: SubmissionTypeEnum
    allowed_file_types: Optional[List[str]] = None
    rubric: Optional[List[RubricCriterion]] = None
    status: AssignmentStatusEnum
    created_at: datetime
    updated_at: datetime

class AssignmentGrade(BaseModel):
    score: float = Field(..., ge=0)
    feedback: Optional[str] = None
    rubric_scores: Optional[Dict[str, float]] = None  # criterion index -> score

class AssignmentSubmissionResponse(BaseModel):
    id: str
    assignment_id: str
    student_id: str
    status: AssignmentSubmissionStatusEnum
    submitted_at: datetime
    text_submission: Optional[str] = None
    file_submissions: List[FileSubmission] = Field(default_factory=list)
    resubmissions: List[dict] = Field(default_factory=list)
    is_late: bool
    score: Optional[float] = None
    feedback: Optional[str] = None
    rubric_scores: Optional[Dict[str, float]] = None
    graded_by: Optional[str] = None
    graded_at: Optional[datetime] = None
