"""
Tests for config-driven grading: strategies, penalties, bonuses and letter grades
"""
from unittest.mock import AsyncMock

from schemas.grading import (
    ChoiceGradingConfig, GradeBoundaries, GradingStrategyEnum, MatchingGradingConfig, NumericalGradingConfig,
    OrderingGradingConfig, QuestionGradingConfig, QuizGradingConfig
)
from services.advanced_grading import (
    AdvancedQuizGrader, apply_late_penalty, letter_grade, resolve_config
)
from services.code_executor import ExecutionResult


def make_question(question_type, question_data, points=4, **extra):
    return {"id": "q1", "question_type": question_type, "question_data": question_data, "points": points, **extra}


MULTI = make_question("multiple_choice", {"options": ["a", "b", "c", "d"], "correct_option_indices": [0, 2]})


class TestResolveConfig:
    """Question config beats quiz config beats the type default"""

    def test_type_default(self):
        config = resolve_config(make_question("single_choice", {}))
        assert config.strategy == GradingStrategyEnum.all_or_nothing

    def test_quiz_config_for_type(self):
        quiz_config = QuizGradingConfig(question_configs={
            "single_choice": QuestionGradingConfig(strategy=GradingStrategyEnum.penalty_based),
        })
        config = resolve_config(make_question("single_choice", {}), quiz_config)
        assert config.strategy == GradingStrategyEnum.penalty_based

    def test_question_config_wins(self):
        question = make_question("single_choice", {}, grading_config={"strategy": "weighted_partial"})
        quiz_config = QuizGradingConfig(question_configs={
            "single_choice": QuestionGradingConfig(strategy=GradingStrategyEnum.penalty_based),
        })
        assert resolve_config(question, quiz_config).strategy == GradingStrategyEnum.weighted_partial


class TestStrategies:

    async def test_default_multiple_choice_penalizes_wrong_selection(self):
        result = await AdvancedQuizGrader().grade_with_config(MULTI, [0, 3])
        # 2 points partial credit minus 0.5 for the wrong pick
        assert result.points_earned == 1.5
        assert result.detailed_feedback["penalties_applied"] == {"wrong_selections": 0.5}
        assert result.detailed_feedback["strategy_used"] == "partial_credit"

    async def test_all_or_nothing_removes_partial_credit(self):
        config = QuestionGradingConfig(strategy=GradingStrategyEnum.all_or_nothing)
        result = await AdvancedQuizGrader().grade_with_config(MULTI, [0], config)
        assert result.points_earned == 0
        assert result.detailed_feedback["breakdown"]["partial_credit_removed"] == 2

    async def test_minimum_score(self):
        config = QuestionGradingConfig(strategy=GradingStrategyEnum.all_or_nothing, minimum_score_percentage=25)
        result = await AdvancedQuizGrader().grade_with_config(MULTI, [1], config)
        assert result.points_earned == 1

    async def test_score_is_floored_at_zero(self):
        config = QuestionGradingConfig(choice=ChoiceGradingConfig(penalty_per_wrong_selection=3))
        result = await AdvancedQuizGrader().grade_with_config(MULTI, [1, 3], config)
        assert result.points_earned == 0

    async def test_negative_score_when_allowed(self):
        config = QuestionGradingConfig(choice=ChoiceGradingConfig(
            penalty_per_wrong_selection=3, allow_negative_score=True,
        ))
        result = await AdvancedQuizGrader().grade_with_config(MULTI, [1, 3], config)
        assert result.points_earned == -4

    async def test_bonus_never_exceeds_max_points(self):
        question = make_question("single_choice", {"options": ["a", "b"], "correct_option_index": 1}, points=2)
        config = QuestionGradingConfig(choice=ChoiceGradingConfig(explanation_required=True, explanation_bonus=50))
        result = await AdvancedQuizGrader().grade_with_config(
            question, {"selected_option_index": 1, "explanation": "because"}, config
        )
        assert result.detailed_feedback["bonuses_earned"] == {"explanation": 1}
        assert result.points_earned == 2
        assert result.percentage == 100


class TestNumericalConfig:

    async def test_percentage_tolerance(self):
        question = make_question("numerical", {"correct_answer": 100})
        config = QuestionGradingConfig(numerical=NumericalGradingConfig(
            tolerance_mode="percentage", percentage_tolerance=10,
        ))
        assert (await AdvancedQuizGrader().grade_with_config(question, 109, config)).is_correct
        assert not (await AdvancedQuizGrader().grade_with_config(question, 111, config)).is_correct

    async def test_range_mode(self):
        question = make_question("numerical", {"correct_answer": 5})
        config = QuestionGradingConfig(numerical=NumericalGradingConfig(
            tolerance_mode="range", range_min=4, range_max=8,
        ))
        assert (await AdvancedQuizGrader().grade_with_config(question, 7.5, config)).is_correct

    async def test_units_penalty(self):
        question = make_question("numerical", {"correct_answer": 10, "units": "m"})
        config = QuestionGradingConfig(numerical=NumericalGradingConfig(units_required=True, units_penalty=50))
        result = await AdvancedQuizGrader().grade_with_config(question, {"answer": 10, "units": "cm"}, config)
        assert result.points_earned == 2
        assert not result.is_correct

        result = await AdvancedQuizGrader().grade_with_config(question, {"answer": 10, "units": "M"}, config)
        assert result.points_earned == 4


class TestOrderingAndCoding:

    async def test_adjacency_bonus(self):
        question = make_question("ordering", {"correct_order": ["a", "b", "c"]}, points=6)
        config = QuestionGradingConfig(ordering=OrderingGradingConfig(adjacency_bonus=50))
        result = await AdvancedQuizGrader().grade_with_config(question, ["c", "a", "b"], config)
        assert result.detailed_feedback["bonuses_earned"] == {"adjacency": 1.5}
        assert result.points_earned == 1.5

    async def test_dropdown_defaults_to_all_or_nothing(self):
        question = make_question("dropdown", {
            "text_with_dropdowns": "{{dropdown}} and {{dropdown}}",
            "dropdown_options": [["Red", "Blue"], ["Cat", "Dog"]],
            "correct_selections": ["Red", "Dog"],
        })
        result = await AdvancedQuizGrader().grade_with_config(question, ["red", "cat"])
        assert result.points_earned == 0
        assert result.detailed_feedback["strategy_used"] == "all_or_nothing"

        result = await AdvancedQuizGrader().grade_with_config(question, ["red", "dog"])
        assert result.points_earned == 4

    async def test_bonuses_are_a_share_of_the_points(self):
        question = make_question("matching", {
            "left_items": [{"id": "1"}, {"id": "2"}],
            "right_items": [{"id": "a"}, {"id": "b"}],
            "correct_matches": {"1": "a", "2": "b"},
        }, points=8)
        config = QuestionGradingConfig(matching=MatchingGradingConfig(bonus_for_perfect_order=25))
        result = await AdvancedQuizGrader().grade_with_config(question, {"1": "a", "2": "b"}, config)
        assert result.detailed_feedback["bonuses_earned"] == {"perfect_order": 2}
        assert result.points_earned == 8

    async def test_coding_weights_and_runtime_penalty(self):
        executor = AsyncMock()
        executor.run_test_cases.return_value = [
            ExecutionResult(test_case_id="0", passed=True, actual_output="2", expected_output="2"),
            ExecutionResult(test_case_id="1", passed=False, expected_output="6", error="ZeroDivisionError"),
        ]
        question = make_question("coding", {
            "language": "python",
            "test_cases": [
                {"input": "1", "expected_output": "2", "points": 1},
                {"input": "3", "expected_output": "6", "points": 3, "is_hidden": True},
            ],
        })
        result = await AdvancedQuizGrader(executor).grade_with_config(question, "print(int(input()) * 2)")

        # weighted_partial: 1 of 4 test case points, then 10% of 4 for the runtime error
        assert result.points_earned == 0.6
        assert result.detailed_feedback["penalties_applied"] == {"runtime": 0.4}
        hidden = result.detailed_feedback["test_results"][1]
        assert hidden["is_hidden"] and "actual_output" not in hidden

    async def test_grader_errors_are_reported_not_raised(self):
        executor = AsyncMock()
        executor.run_test_cases.side_effect = RuntimeError("boom")
        question = make_question("coding", {"language": "python", "test_cases": [{"input": "", "expected_output": ""}]})
        result = await AdvancedQuizGrader(executor).grade_with_config(question, "x")
        assert result.points_earned == 0
        assert result.feedback == "Error occurred during automatic grading"


class TestQuizLevelScoring:

    def test_letter_grades(self):
        assert letter_grade(95) == "A"
        assert letter_grade(80) == "B"
        assert letter_grade(59.9) == "F"
        assert letter_grade(75, GradeBoundaries(A=95, B=85, C=75, D=65)) == "C"

    def test_late_penalty_per_started_day(self):
        config = QuizGradingConfig(enable_late_penalty=True, late_penalty_percentage=10)
        assert apply_late_penalty(85, 1.5, config) == (65, 20)

    def test_late_penalty_is_capped(self):
        config = QuizGradingConfig(
            enable_late_penalty=True, late_penalty_percentage=10, max_late_penalty_percentage=15,
        )
        assert apply_late_penalty(85, 3, config) == (70, 15)

    def test_late_penalty_disabled(self):
        assert apply_late_penalty(85, 3, QuizGradingConfig()) == (85, 0)
