# schemas/quiz.py
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from models.base import UTCDatetime
from models.quiz import (
    QuestionTypeEnum, QuizStatusEnum, QuizTypeEnum, SubmissionStatusEnum, GradeStatusEnum
)
from schemas.grading import QuestionGradingConfig, QuizGradingConfig


class QuizCreate(BaseModel):
    course_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    instructions: Optional[str] = None
    quiz_type: QuizTypeEnum = QuizTypeEnum.practice
    time_limit: Optional[int] = Field(default=None, ge=1, le=480)
    max_attempts: int = Field(default=1, ge=1, le=50)
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)
    show_results_immediately: bool = True
    randomize_questions: bool = False
    show_correct_answers: bool = False
    enable_automatic_grading: bool = True
    require_manual_grading: bool = False
    is_public: bool = False
    start_date: Optional[UTCDatetime] = None
    end_date: Optional[UTCDatetime] = None
    grading_config: Optional[QuizGradingConfig] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self

class QuizUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    instructions: Optional[str] = None
    quiz_type: Optional[QuizTypeEnum] = None
    time_limit: Optional[int] = Field(default=None, ge=1, le=480)
    max_attempts: Optional[int] = Field(default=None, ge=1, le=50)
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)
    show_results_immediately: Optional[bool] = None
    randomize_questions: Optional[bool] = None
    show_correct_answers: Optional[bool] = None
    enable_automatic_grading: Optional[bool] = None
    require_manual_grading: Optional[bool] = None
    is_public: Optional[bool] = None
    start_date: Optional[UTCDatetime] = None
    end_date: Optional[UTCDatetime] = None
    grading_config: Optional[QuizGradingConfig] = None

    model_config = ConfigDict(use_enum_values=True)

class QuizStatusUpdate(BaseModel):
    status: QuizStatusEnum

class QuizResponse(BaseModel):
    id: str
    course_id: str
    created_by: str
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    status: QuizStatusEnum
    quiz_type: QuizTypeEnum
    time_limit: Optional[int] = None
    max_attempts: int
    passing_score: Optional[float] = None
    show_results_immediately: bool
    randomize_questions: bool
    show_correct_answers: bool
    enable_automatic_grading: bool
    require_manual_grading: bool
    is_public: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    grading_config: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class QuestionCreate(BaseModel):
    question_type: QuestionTypeEnum
    question_text: str = Field(..., min_length=1)
    question_data: Any = Field(default_factory=dict)  # object or JSON string
    correct_answer: Any = None
    explanation: Optional[str] = None
    points: float = Field(default=1, gt=0)
    order: Optional[int] = None
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    is_required: bool = True
    grading_config: Optional[QuestionGradingConfig] = None

class QuestionUpdate(BaseModel):
    question_text: Optional[str] = Field(default=None, min_length=1)
    question_data: Any = None
    correct_answer: Any = None
    explanation: Optional[str] = None
    points: Optional[float] = Field(default=None, gt=0)
    order: Optional[int] = None
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    is_required: Optional[bool] = None
    grading_config: Optional[QuestionGradingConfig] = None

class QuestionResponse(BaseModel):
    id: str
    quiz_id: str
    question_type: QuestionTypeEnum
    question_text: str
    question_data: Dict[str, Any]
    correct_answer: Any = None
    explanation: Optional[str] = None
    points: float
    order: int
    time_limit_seconds: Optional[int] = None
    is_required: bool
    grading_config: Optional[Dict[str, Any]] = None
    warnings: List[str] = Field(default_factory=list)

class QuestionReorder(BaseModel):
    question_ids: List[str] = Field(..., min_length=1)

class BulkQuestionCreate(BaseModel):
    questions: List[QuestionCreate] = Field(..., min_length=1)

class HarmonizeReport(BaseModel):
    quiz_id: str
    questions_checked: int
    questions_updated: int
    updated_question_ids: List[str]


class AnswerSubmit(BaseModel):
    answer: Any

class BulkAnswerItem(BaseModel):
    question_id: str
    answer: Any

class BulkAnswerSubmit(BaseModel):
    answers: List[BulkAnswerItem]

class QuizSubmitAll(BaseModel):
    answers: Dict[str, Any]  # question_id -> answer


class AttemptResponse(BaseModel):
    id: str
    submission_id: str
    question_id: str
    submitted_answer: Any = None
    correct_answer: Any = None
    is_correct: bool
    points_earned: float
    max_points: float
    feedback: Optional[str] = None
    requires_manual_grading: bool = False
    manually_graded: bool = False
    detailed_feedback: Optional[Dict[str, Any]] = None

class AnswerResult(BaseModel):
    """A student's view of an answer they just gave; never carries the key."""
    question_id: str
    submitted_answer: Any = None
    max_points: float
    requires_manual_grading: bool = False
    is_correct: Optional[bool] = None
    points_earned: Optional[float] = None
    feedback: Optional[str] = None

class SubmissionResponse(BaseModel):
    id: str
    quiz_id: str
    student_id: str
    attempt_number: int
    status: SubmissionStatusEnum
    grade_status: GradeStatusEnum
    total_score: float
    max_score: float
    percentage: float
    letter_grade: Optional[str] = None
    late_penalty_applied: float = 0
    passed: Optional[bool] = None
    started_at: datetime
    end_time: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_taken: Optional[int] = None
    graded_at: Optional[datetime] = None
    graded_by: Optional[str] = None
    feedback: Optional[str] = None

class SubmissionDetail(SubmissionResponse):
    attempts: List[AttemptResponse] = Field(default_factory=list)
