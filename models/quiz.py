# models/quiz.py
from pydantic import Field
from typing import Any, Dict, Optional
from datetime import datetime
from enum import Enum

from models.base import MongoDBModel

class QuestionTypeEnum(str, Enum):
    single_choice = "single_choice"
    multiple_choice = "multiple_choice"
    true_false = "true_false"
    numerical = "numerical"
    fill_blank = "fill_blank"
    matching = "matching"
    ordering = "ordering"
    dropdown = "dropdown"
    coding = "coding"
    short_answer = "short_answer"
    algorithmic = "algorithmic"
    drag_drop = "drag_drop"
    logical_expression = "logical_expression"

CHOICE_TYPES = {QuestionTypeEnum.single_choice, QuestionTypeEnum.multiple_choice, QuestionTypeEnum.true_false}
TEXT_INPUT_TYPES = {QuestionTypeEnum.numerical, QuestionTypeEnum.fill_blank, QuestionTypeEnum.short_answer}
INTERACTIVE_TYPES = {QuestionTypeEnum.matching, QuestionTypeEnum.ordering, QuestionTypeEnum.dropdown}
MANUAL_TYPES = {QuestionTypeEnum.algorithmic, QuestionTypeEnum.drag_drop, QuestionTypeEnum.logical_expression}

class QuizStatusEnum(str, Enum):
    draft = "draft"
    published = "published"
    completed = "completed"

class QuizTypeEnum(str, Enum):
    practice = "practice"
    graded = "graded"
    exam = "exam"

class SubmissionStatusEnum(str, Enum):
    in_progress = "in_progress"
    completed = "completed"
    timed_out = "timed_out"
    abandoned = "abandoned"

class GradeStatusEnum(str, Enum):
    pending = "pending"
    graded = "graded"
    auto_graded = "auto_graded"

class Quiz(MongoDBModel):
    course_id: str
    created_by: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    instructions: Optional[str] = None
    status: QuizStatusEnum = QuizStatusEnum.draft
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
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    grading_config: Optional[Dict[str, Any]] = None

class QuizQuestion(MongoDBModel):
    quiz_id: str
    created_by: Optional[str] = None
    question_type: QuestionTypeEnum
    question_text: str
    question_data: Dict[str, Any] = Field(default_factory=dict)
    # Legacy column, superseded by the answer keys inside question_data
    correct_answer: Any = None
    explanation: Optional[str] = None
    points: float = Field(default=1, gt=0)
    order: int = 0
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    is_required: bool = True
    grading_config: Optional[Dict[str, Any]] = None

class QuizSubmission(MongoDBModel):
    quiz_id: str
    student_id: str
    attempt_number: int = 1
    status: SubmissionStatusEnum = SubmissionStatusEnum.in_progress
    grade_status: GradeStatusEnum = GradeStatusEnum.pending
    total_score: float = 0
    max_score: float = 0
    percentage: float = 0
    letter_grade: Optional[str] = None
    late_penalty_applied: float = 0
    passed: Optional[bool] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_taken: Optional[int] = None
    graded_at: Optional[datetime] = None
    graded_by: Optional[str] = None
    feedback: Optional[str] = None

class QuizAttempt(MongoDBModel):
    submission_id: str
    question_id: str
    submitted_answer: Any = None
    correct_answer: Any = None
    is_correct: bool = False
    points_earned: float = 0
    max_points: float = 0
    feedback: Optional[str] = None
    requires_manual_grading: bool = False
    manually_graded: bool = False
    detailed_feedback: Optional[Dict[str, Any]] = None
