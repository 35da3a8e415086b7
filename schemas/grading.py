# schemas/grading.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from enum import Enum


class GradingStrategyEnum(str, Enum):
    all_or_nothing = "all_or_nothing"
    partial_credit = "partial_credit"
    weighted_partial = "weighted_partial"
    penalty_based = "penalty_based"

class KeywordMatchingModeEnum(str, Enum):
    exact = "exact"
    partial = "partial"
    fuzzy = "fuzzy"

class ToleranceModeEnum(str, Enum):
    absolute = "absolute"
    percentage = "percentage"
    range = "range"

class PositionWeightModeEnum(str, Enum):
    equal = "equal"
    weighted = "weighted"

class TestCaseWeightsEnum(str, Enum):
    equal = "equal"
    custom = "custom"


class GradingResult(BaseModel):
    """Outcome of grading one answer."""
    is_correct: bool = False
    points_earned: float = 0
    feedback: Optional[str] = None
    requires_manual_grading: bool = False
    detailed_feedback: Dict[str, Any] = Field(default_factory=dict)

class AdvancedGradingResult(GradingResult):
    max_points: float = 0
    percentage: float = 0


class ChoiceGradingConfig(BaseModel):
    penalty_per_wrong_selection: float = Field(default=0, ge=0)
    maximum_penalty_percentage: float = Field(default=100, ge=0, le=100)
    allow_negative_score: bool = False
    explanation_required: bool = False
    explanation_bonus: float = Field(default=0, ge=0)

class TextGradingConfig(BaseModel):
    case_sensitive: bool = False
    keyword_matching_mode: KeywordMatchingModeEnum = KeywordMatchingModeEnum.partial
    minimum_keywords_required: int = Field(default=0, ge=0)
    fuzzy_threshold: float = Field(default=0.8, gt=0, le=1)

class NumericalGradingConfig(BaseModel):
    tolerance_mode: ToleranceModeEnum = ToleranceModeEnum.absolute
    absolute_tolerance: float = Field(default=0, ge=0)
    percentage_tolerance: float = Field(default=0, ge=0)
    range_min: Optional[float] = None
    range_max: Optional[float] = None
    units_required: bool = False
    units_penalty: float = Field(default=0, ge=0, le=100)

class OrderingGradingConfig(BaseModel):
    position_weight_mode: PositionWeightModeEnum = PositionWeightModeEnum.equal
    adjacency_bonus: float = Field(default=0, ge=0, le=100)

class MatchingGradingConfig(BaseModel):
    partial_match_credit: bool = True
    bonus_for_perfect_order: float = Field(default=0, ge=0)

class CodingGradingConfig(BaseModel):
    test_case_weights: TestCaseWeightsEnum = TestCaseWeightsEnum.equal
    compilation_penalty: float = Field(default=0, ge=0, le=100)
    runtime_penalty: float = Field(default=0, ge=0, le=100)
    memory_penalty: float = Field(default=0, ge=0, le=100)
    efficiency_bonus: float = Field(default=0, ge=0)


class QuestionGradingConfig(BaseModel):
    """Per-question grading rules. Bonuses and the coding and numerical
    penalties are percentages of the question's points; the penalty per
    wrong selection is in points."""
    strategy: GradingStrategyEnum = GradingStrategyEnum.partial_credit
    enable_partial_credit: bool = True
    minimum_score_percentage: float = Field(default=0, ge=0, le=100)
    choice: Optional[ChoiceGradingConfig] = None
    text: Optional[TextGradingConfig] = None
    numerical: Optional[NumericalGradingConfig] = None
    ordering: Optional[OrderingGradingConfig] = None
    matching: Optional[MatchingGradingConfig] = None
    coding: Optional[CodingGradingConfig] = None


class GradeBoundaries(BaseModel):
    A: float = 90
    B: float = 80
    C: float = 70
    D: float = 60

class QuizGradingConfig(BaseModel):
    # keyed by question type
    question_configs: Dict[str, QuestionGradingConfig] = Field(default_factory=dict)
    overall_passing_score: Optional[float] = Field(default=None, ge=0, le=100)
    grade_boundaries: GradeBoundaries = Field(default_factory=GradeBoundaries)
    enable_late_penalty: bool = False
    late_penalty_percentage: float = Field(default=0, ge=0, le=100)
    max_late_penalty_percentage: float = Field(default=100, ge=0, le=100)


class ManualGradeRequest(BaseModel):
    grades: Dict[str, float]  # question_id -> points
    feedback: Optional[str] = None

class FeedbackUpdate(BaseModel):
    feedback: str

class QuestionAnalytics(BaseModel):
    question_id: str
    question_text: str
    question_type: str
    attempts: int
    correct_rate: float
    average_points: float

class QuizAnalytics(BaseModel):
    quiz_id: str
    total_submissions: int
    average_percentage: float
    highest_percentage: float
    lowest_percentage: float
    pass_rate: float
    grade_distribution: Dict[str, int]
    questions: List[QuestionAnalytics]
