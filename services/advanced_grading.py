# services/advanced_grading.py
import logging
import math
from typing import Any, Dict, Optional, Tuple

from models.quiz import QuestionTypeEnum
from schemas.grading import (
    AdvancedGradingResult, ChoiceGradingConfig, CodingGradingConfig, GradeBoundaries,
    GradingResult, GradingStrategyEnum, MatchingGradingConfig, NumericalGradingConfig,
    OrderingGradingConfig, PositionWeightModeEnum, QuestionGradingConfig, QuizGradingConfig,
    TestCaseWeightsEnum, TextGradingConfig, ToleranceModeEnum
)
from services.answer_normalization import (
    normalize_answer, normalize_correct_answer, question_data_of, to_number
)
from services.code_executor import CodeExecutor
from services.grading import (
    GRADING_ERROR, CodingGrader, InteractiveGrader, QuizGrader, TextInputGrader, question_points
)

logger = logging.getLogger(__name__)


DEFAULT_CONFIGS: Dict[str, QuestionGradingConfig] = {
    QuestionTypeEnum.single_choice: QuestionGradingConfig(strategy=GradingStrategyEnum.all_or_nothing),
    QuestionTypeEnum.true_false: QuestionGradingConfig(strategy=GradingStrategyEnum.all_or_nothing),
    QuestionTypeEnum.multiple_choice: QuestionGradingConfig(
        strategy=GradingStrategyEnum.partial_credit,
        choice=ChoiceGradingConfig(penalty_per_wrong_selection=0.5, maximum_penalty_percentage=50),
    ),
    QuestionTypeEnum.short_answer: QuestionGradingConfig(text=TextGradingConfig()),
    QuestionTypeEnum.numerical: QuestionGradingConfig(
        strategy=GradingStrategyEnum.all_or_nothing,
        numerical=NumericalGradingConfig(absolute_tolerance=0.01),
    ),
    QuestionTypeEnum.fill_blank: QuestionGradingConfig(text=TextGradingConfig()),
    QuestionTypeEnum.matching: QuestionGradingConfig(matching=MatchingGradingConfig()),
    QuestionTypeEnum.ordering: QuestionGradingConfig(ordering=OrderingGradingConfig()),
    QuestionTypeEnum.dropdown: QuestionGradingConfig(strategy=GradingStrategyEnum.all_or_nothing),
    QuestionTypeEnum.coding: QuestionGradingConfig(
        strategy=GradingStrategyEnum.weighted_partial,
        coding=CodingGradingConfig(compilation_penalty=20, runtime_penalty=10, memory_penalty=5),
    ),
}


def resolve_config(question: Dict[str, Any], quiz_config: Optional[QuizGradingConfig] = None) -> QuestionGradingConfig:
    """Question's own config, else the quiz's config for its type, else the default."""
    if question.get("grading_config"):
        return QuestionGradingConfig.model_validate(question["grading_config"])
    question_type = question.get("question_type")
    if quiz_config and question_type in quiz_config.question_configs:
        return quiz_config.question_configs[question_type]
    return DEFAULT_CONFIGS.get(question_type, QuestionGradingConfig())


def letter_grade(percentage: float, boundaries: Optional[GradeBoundaries] = None) -> str:
    boundaries = boundaries or GradeBoundaries()
    for letter in ("A", "B", "C", "D"):
        if percentage >= getattr(boundaries, letter):
            return letter
    return "F"


def apply_late_penalty(percentage: float, days_late: float, config: QuizGradingConfig) -> Tuple[float, float]:
    """Returns the penalised percentage and the penalty deducted."""
    if not config.enable_late_penalty or days_late <= 0:
        return percentage, 0
    penalty = min(config.late_penalty_percentage * math.ceil(days_late), config.max_late_penalty_percentage)
    return max(0.0, round(percentage - penalty, 2)), penalty


class AdvancedQuizGrader:
    """
    Runs the base grader for a question and applies a grading config on top:
    type-specific penalties and bonuses, the scoring strategy, the minimum
    score and finally the [0, max_points] cap.
    """

    def __init__(self, executor: Optional[CodeExecutor] = None):
        self.base = QuizGrader(executor)
        self.coding = CodingGrader(executor)

    async def grade_with_config(
        self,
        question: Dict[str, Any],
        answer: Any,
        config: Optional[QuestionGradingConfig] = None
    ) -> AdvancedGradingResult:
        config = config or resolve_config(question)
        max_points = question_points(question)
        penalties: Dict[str, float] = {}
        bonuses: Dict[str, float] = {}

        try:
            result, breakdown = await self._grade_by_type(question, answer, config, penalties, bonuses)
        except Exception:
            logger.exception(f"Advanced grading failed for question {question.get('id')}")
            result, breakdown = GradingResult(feedback=GRADING_ERROR), {}

        points = result.points_earned
        allow_negative = bool(config.choice and config.choice.allow_negative_score)

        if not result.requires_manual_grading:
            if not result.is_correct and (
                config.strategy == GradingStrategyEnum.all_or_nothing or not config.enable_partial_credit
            ):
                if points:
                    breakdown["partial_credit_removed"] = points
                points = 0

            points = points - sum(penalties.values()) + sum(bonuses.values())

            if config.minimum_score_percentage:
                minimum = max_points * config.minimum_score_percentage / 100
                if points < minimum:
                    breakdown["minimum_score_applied"] = minimum
                    points = minimum

        points = min(points, max_points)
        if not allow_negative:
            points = max(points, 0)
        points = round(points, 2)

        return AdvancedGradingResult(
            is_correct=result.is_correct and points >= max_points,
            points_earned=points,
            max_points=max_points,
            percentage=round(points / max_points * 100, 2) if max_points else 0,
            feedback=result.feedback,
            requires_manual_grading=result.requires_manual_grading,
            detailed_feedback={
                **result.detailed_feedback,
                "strategy_used": GradingStrategyEnum(config.strategy).value,
                "breakdown": breakdown,
                "penalties_applied": penalties,
                "bonuses_earned": bonuses,
            },
        )

    async def _grade_by_type(self, question, answer, config, penalties, bonuses):
        question_type = question.get("question_type")
        max_points = question_points(question)
        breakdown: Dict[str, Any] = {}

        if question_type in (QuestionTypeEnum.single_choice, QuestionTypeEnum.true_false,
                             QuestionTypeEnum.multiple_choice):
            result = await self.base.grade_question(question, answer)
            choice = config.choice or ChoiceGradingConfig()
            wrong = result.detailed_feedback.get("wrong_selections", 0)
            if (question_type == QuestionTypeEnum.multiple_choice and not result.is_correct and wrong
                    and choice.penalty_per_wrong_selection
                    and config.strategy != GradingStrategyEnum.all_or_nothing):
                cap = max_points * choice.maximum_penalty_percentage / 100
                penalties["wrong_selections"] = min(wrong * choice.penalty_per_wrong_selection, cap)
            explanation = answer.get("explanation") if isinstance(answer, dict) else None
            if (choice.explanation_required and choice.explanation_bonus and result.is_correct
                    and isinstance(explanation, str) and explanation.strip()):
                bonuses["explanation"] = round(max_points * choice.explanation_bonus / 100, 2)
            return result, breakdown

        if question_type in (QuestionTypeEnum.short_answer, QuestionTypeEnum.fill_blank):
            text = config.text or TextGradingConfig()
            if question_type == QuestionTypeEnum.fill_blank:
                return TextInputGrader.grade_fill_blank(question, answer), breakdown
            result = TextInputGrader.grade_short_answer(
                question, answer, text.keyword_matching_mode, text.case_sensitive, text.fuzzy_threshold
            )
            found = len(result.detailed_feedback.get("keywords_found", []))
            if (not result.requires_manual_grading and text.minimum_keywords_required
                    and found < text.minimum_keywords_required):
                breakdown["minimum_keywords_not_met"] = text.minimum_keywords_required
                result.points_earned = 0
                result.is_correct = False
            return result, breakdown

        if question_type == QuestionTypeEnum.numerical:
            result = self._grade_numerical(question, answer, config.numerical or NumericalGradingConfig())
            numerical = config.numerical or NumericalGradingConfig()
            units = question_data_of(question).get("units")
            if numerical.units_required and units and result.points_earned > 0:
                given = answer.get("units") if isinstance(answer, dict) else None
                if str(given or "").strip().lower() != str(units).strip().lower():
                    penalties["units"] = max_points * numerical.units_penalty / 100
            return result, breakdown

        if question_type == QuestionTypeEnum.ordering:
            ordering = config.ordering or OrderingGradingConfig()
            result = InteractiveGrader.grade_ordering(
                question, answer, weighted=ordering.position_weight_mode == PositionWeightModeEnum.weighted
            )
            if ordering.adjacency_bonus and not result.is_correct:
                pairs, possible = self._adjacent_pairs(question, answer)
                if pairs and possible:
                    bonuses["adjacency"] = round(max_points * ordering.adjacency_bonus / 100 * pairs / possible, 2)
            return result, breakdown

        if question_type == QuestionTypeEnum.matching:
            matching = config.matching or MatchingGradingConfig()
            result = InteractiveGrader.grade_matching(question, answer)
            if not matching.partial_match_credit and not result.is_correct:
                breakdown["partial_credit_removed"] = result.points_earned
                result.points_earned = 0
            if matching.bonus_for_perfect_order and result.is_correct:
                bonuses["perfect_order"] = round(max_points * matching.bonus_for_perfect_order / 100, 2)
            return result, breakdown

        if question_type == QuestionTypeEnum.coding:
            coding = config.coding or CodingGradingConfig()
            custom = (config.strategy == GradingStrategyEnum.weighted_partial
                      or coding.test_case_weights == TestCaseWeightsEnum.custom)
            result = await self.coding.grade_coding(question, answer, custom_weights=custom)
            kinds = {t.get("error_kind") for t in result.detailed_feedback.get("test_results", [])}
            for kind, percent in (("compilation", coding.compilation_penalty),
                                  ("runtime", coding.runtime_penalty),
                                  ("timeout", coding.runtime_penalty),
                                  ("memory", coding.memory_penalty)):
                if kind in kinds and percent:
                    penalties[kind] = round(max_points * percent / 100, 2)
            if result.is_correct and coding.efficiency_bonus:
                bonuses["efficiency"] = round(max_points * coding.efficiency_bonus / 100, 2)
            return result, breakdown

        return await self.base.grade_question(question, answer), breakdown

    @staticmethod
    def _grade_numerical(question, answer, numerical: NumericalGradingConfig) -> GradingResult:
        qd = question_data_of(question)
        if numerical.tolerance_mode == ToleranceModeEnum.range and numerical.range_min is not None \
                and numerical.range_max is not None:
            return TextInputGrader.grade_numerical(
                question, answer, tolerance=math.inf,
                acceptable_range={"min": numerical.range_min, "max": numerical.range_max}
            )
        if to_number(qd.get("tolerance")) is not None:
            return TextInputGrader.grade_numerical(question, answer)
        if numerical.tolerance_mode == ToleranceModeEnum.percentage:
            key = normalize_correct_answer(question)
            base = abs(key["answer"]) if key else 0
            return TextInputGrader.grade_numerical(
                question, answer, tolerance=base * numerical.percentage_tolerance / 100
            )
        return TextInputGrader.grade_numerical(question, answer, tolerance=numerical.absolute_tolerance)

    @staticmethod
    def _adjacent_pairs(question, answer) -> Tuple[int, int]:
        """Neighbouring submitted items that are also neighbours in the key."""
        key = normalize_correct_answer(question)
        submitted = normalize_answer(QuestionTypeEnum.ordering, answer)
        if not key or not isinstance(submitted, dict):
            return 0, 0
        expected = [str(i) for i in key["ordered_item_ids"]]
        given = [str(i) for i in submitted.get("ordered_item_ids") or []]
        successor = {expected[i]: expected[i + 1] for i in range(len(expected) - 1)}
        pairs = sum(1 for i in range(len(given) - 1) if successor.get(given[i]) == given[i + 1])
        return pairs, max(len(expected) - 1, 0)
