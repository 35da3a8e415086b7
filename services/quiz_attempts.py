# services/quiz_attempts.py
"""
Quiz taking and grading workflow.

A student starts a submission, answers questions one at a time or in bulk,
and finalizes it. Each answer is graded on arrival with the advanced grader
and stored as an attempt. Finalizing totals every question of the quiz,
applies any late penalty and letter grade, and decides whether the
submission still waits for an instructor.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, status

from config import DEFAULT_PASSING_SCORE
from crud.enrollment import EnrollmentCRUD
from crud.quiz import QuizCRUD
from crud.submission import SubmissionCRUD
from models.base import naive_utc
from models.quiz import (
    GradeStatusEnum, QuizAttempt, QuizStatusEnum, SubmissionStatusEnum
)
from models.user import User
from schemas.grading import QuizGradingConfig
from services.advanced_grading import (
    AdvancedQuizGrader, apply_late_penalty, letter_grade, resolve_config
)
from services.answer_normalization import normalize_answer, normalize_correct_answer
from services.code_executor import CodeExecutor
from services.grading import question_points

logger = logging.getLogger(__name__)

GRADE_LETTERS = ("A", "B", "C", "D", "F")


def quiz_grading_config(quiz: Dict[str, Any]) -> QuizGradingConfig:
    return QuizGradingConfig.model_validate(quiz.get("grading_config") or {})


def passing_score_for(quiz: Dict[str, Any], config: Optional[QuizGradingConfig] = None) -> float:
    """The quiz's own passing score, else the grading config's, else the default."""
    if quiz.get("passing_score") is not None:
        return float(quiz["passing_score"])
    config = config or quiz_grading_config(quiz)
    if config.overall_passing_score is not None:
        return config.overall_passing_score
    return DEFAULT_PASSING_SCORE


def deadline_passed(submission: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    end_time = naive_utc(submission.get("end_time"))
    return bool(end_time) and (now or datetime.utcnow()) > end_time


def results_visible(submission: Dict[str, Any], quiz: Dict[str, Any]) -> bool:
    """Whether a student may see per-question results of a finished submission."""
    return bool(
        quiz.get("show_results_immediately")
        or submission.get("grade_status") == GradeStatusEnum.graded.value
        or quiz.get("status") == QuizStatusEnum.completed.value
    )


# detailed_feedback fields that quote the answer key
KEY_FEEDBACK_FIELDS = ("expected",)


def hide_answer_key(attempt: Dict[str, Any]) -> Dict[str, Any]:
    attempt = {**attempt, "correct_answer": None}
    detailed = attempt.get("detailed_feedback") or {}
    if any(field in detailed for field in KEY_FEEDBACK_FIELDS):
        attempt["detailed_feedback"] = {k: v for k, v in detailed.items() if k not in KEY_FEEDBACK_FIELDS}
        # the generated feedback line names the expected value too
        if not attempt.get("is_correct") and not attempt.get("manually_graded"):
            attempt["feedback"] = "Incorrect answer"
    return attempt


def answer_result(attempt: Dict[str, Any], quiz: Dict[str, Any]) -> Dict[str, Any]:
    """
    What a student gets back right after answering. The key is never part of
    it; correctness, points and feedback only when the quiz shows results
    immediately.
    """
    result = {
        "question_id": attempt["question_id"],
        "submitted_answer": attempt.get("submitted_answer"),
        "max_points": attempt["max_points"],
        "requires_manual_grading": attempt.get("requires_manual_grading", False),
    }
    if quiz.get("show_results_immediately"):
        shown = attempt if quiz.get("show_correct_answers") else hide_answer_key(attempt)
        result.update({
            "is_correct": shown["is_correct"],
            "points_earned": shown["points_earned"],
            "feedback": shown.get("feedback"),
        })
    return result


class QuizAttemptService:

    def __init__(self, executor: Optional[CodeExecutor] = None):
        self.quiz_crud = QuizCRUD()
        self.submission_crud = SubmissionCRUD()
        self.enrollment_crud = EnrollmentCRUD()
        self.grader = AdvancedQuizGrader(executor)

    # -- lookups ------------------------------------------------------------

    async def _get_quiz(self, quiz_id: str) -> Dict[str, Any]:
        quiz = await self.quiz_crud.get_quiz_by_id(quiz_id)
        if not quiz:
            raise HTTPException(status_code=404, detail="Quiz not found")
        return quiz

    async def get_submission(self, submission_id: str) -> Dict[str, Any]:
        submission = await self.submission_crud.get_submission(submission_id)
        if not submission:
            raise HTTPException(status_code=404, detail="Submission not found")
        return submission

    async def get_owned_submission(self, submission_id: str, student: User) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        submission = await self.get_submission(submission_id)
        if submission["student_id"] != student.id:
            raise HTTPException(status_code=403, detail="This submission belongs to another student")
        return submission, await self._get_quiz(submission["quiz_id"])

    async def _require_open(self, submission: Dict[str, Any], quiz: Dict[str, Any]) -> None:
        if submission["status"] != SubmissionStatusEnum.in_progress.value:
            raise HTTPException(status_code=400, detail="Submission is no longer in progress")
        if deadline_passed(submission):
            await self.finalize(submission, quiz, timed_out=True)
            raise HTTPException(status_code=400, detail="Time limit exceeded, the submission has been finalized")

    # -- taking a quiz ------------------------------------------------------

    async def start_attempt(self, quiz_id: str, student: User) -> Tuple[Dict[str, Any], bool]:
        """Returns the submission and whether an in-progress one was resumed."""
        quiz = await self._get_quiz(quiz_id)
        if quiz["status"] != QuizStatusEnum.published.value:
            raise HTTPException(status_code=400, detail="Quiz is not published")

        now = datetime.utcnow()
        start_date = naive_utc(quiz.get("start_date"))
        end_date = naive_utc(quiz.get("end_date"))
        if start_date and now < start_date:
            raise HTTPException(status_code=400, detail="Quiz has not started yet")
        if end_date and now > end_date and not quiz_grading_config(quiz).enable_late_penalty:
            raise HTTPException(status_code=400, detail="Quiz is closed")

        if not quiz.get("is_public") and not await self.enrollment_crud.is_enrolled(student.id, quiz["course_id"]):
            raise HTTPException(status_code=403, detail="You are not enrolled in this course")

        in_progress = await self.submission_crud.get_in_progress(quiz_id, student.id)
        if in_progress:
            if not deadline_passed(in_progress, now):
                return in_progress, True
            await self.finalize(in_progress, quiz, timed_out=True)

        attempts = await self.submission_crud.count_attempts(quiz_id, student.id)
        if attempts >= quiz.get("max_attempts", 1):
            raise HTTPException(status_code=400, detail="Maximum number of attempts reached")

        submission = await self.submission_crud.create_submission(
            quiz_id, student.id, attempt_number=attempts + 1, time_limit=quiz.get("time_limit")
        )
        logger.info(f"📝 {student.username} started attempt {attempts + 1} of quiz {quiz_id}")
        return submission, False

    async def grade_and_store(
        self,
        submission_id: str,
        question: Dict[str, Any],
        answer: Any,
        quiz_config: Optional[QuizGradingConfig] = None
    ) -> Dict[str, Any]:
        result = await self.grader.grade_with_config(question, answer, resolve_config(question, quiz_config))
        attempt = QuizAttempt(
            submission_id=submission_id,
            question_id=question["id"],
            submitted_answer=normalize_answer(question["question_type"], answer),
            correct_answer=normalize_correct_answer(question),
            is_correct=result.is_correct,
            points_earned=result.points_earned,
            max_points=result.max_points,
            feedback=result.feedback,
            requires_manual_grading=result.requires_manual_grading,
            detailed_feedback=result.detailed_feedback,
        )
        return await self.submission_crud.create_attempt(attempt)

    async def answer_question(self, submission_id: str, question_id: str, answer: Any, student: User) -> Dict[str, Any]:
        submission, quiz = await self.get_owned_submission(submission_id, student)
        await self._require_open(submission, quiz)

        question = await self.quiz_crud.get_question(question_id)
        if not question or question["quiz_id"] != submission["quiz_id"]:
            raise HTTPException(status_code=404, detail="Question not found in this quiz")
        if await self.submission_crud.get_attempt(submission_id, question_id):
            raise HTTPException(status_code=400, detail="Question has already been answered")

        attempt = await self.grade_and_store(submission_id, question, answer, quiz_grading_config(quiz))
        return answer_result(attempt, quiz)

    async def answer_many(
        self,
        submission: Dict[str, Any],
        quiz: Dict[str, Any],
        answers: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """Grade every answer for a question of the quiz that has not been answered yet."""
        questions = {q["id"]: q for q in await self.quiz_crud.get_quiz_questions(quiz["id"])}
        answered = {a["question_id"] for a in await self.submission_crud.get_attempts(submission["id"])}
        config = quiz_grading_config(quiz)

        stored = []
        for question_id, answer in answers.items():
            question = questions.get(question_id)
            if not question or question_id in answered:
                continue
            stored.append(await self.grade_and_store(submission["id"], question, answer, config))
            answered.add(question_id)
        return stored

    async def bulk_answer(self, submission_id: str, answers: Dict[str, Any], student: User) -> List[Dict[str, Any]]:
        submission, quiz = await self.get_owned_submission(submission_id, student)
        await self._require_open(submission, quiz)
        return [answer_result(a, quiz) for a in await self.answer_many(submission, quiz, answers)]

    async def submit(self, submission_id: str, student: User) -> Dict[str, Any]:
        submission, quiz = await self.get_owned_submission(submission_id, student)
        if submission["status"] != SubmissionStatusEnum.in_progress.value:
            raise HTTPException(status_code=400, detail="Submission has already been submitted")
        return await self.finalize(submission, quiz, timed_out=deadline_passed(submission))

    async def submit_all(self, quiz_id: str, answers: Dict[str, Any], student: User) -> Dict[str, Any]:
        """Start (or resume) an attempt, answer everything and finalize it in one go."""
        submission, _ = await self.start_attempt(quiz_id, student)
        quiz = await self._get_quiz(quiz_id)
        await self.answer_many(submission, quiz, answers)
        return await self.finalize(submission, quiz)

    # -- scoring ------------------------------------------------------------

    def _totals(
        self,
        quiz: Dict[str, Any],
        questions: List[Dict[str, Any]],
        attempts: List[Dict[str, Any]],
        submitted_at: datetime
    ) -> Dict[str, Any]:
        question_ids = {q["id"] for q in questions}
        total = round(sum(a["points_earned"] for a in attempts if a["question_id"] in question_ids), 2)
        max_score = round(sum(question_points(q) for q in questions), 2)
        percentage = round(total / max_score * 100, 2) if max_score else 0.0

        config = quiz_grading_config(quiz)
        penalty = 0
        end_date = naive_utc(quiz.get("end_date"))
        if end_date and submitted_at > end_date:
            days_late = (submitted_at - end_date).total_seconds() / 86400
            percentage, penalty = apply_late_penalty(percentage, days_late, config)

        return {
            "total_score": total,
            "max_score": max_score,
            "percentage": percentage,
            "late_penalty_applied": penalty,
            "letter_grade": letter_grade(percentage, config.grade_boundaries),
            "passed": percentage >= passing_score_for(quiz, config),
        }

    @staticmethod
    def _needs_manual_grading(quiz: Dict[str, Any], attempts: List[Dict[str, Any]]) -> bool:
        return (
            bool(quiz.get("require_manual_grading"))
            or not quiz.get("enable_automatic_grading", True)
            or any(a.get("requires_manual_grading") for a in attempts)
        )

    async def finalize(self, submission: Dict[str, Any], quiz: Dict[str, Any], timed_out: bool = False) -> Dict[str, Any]:
        now = datetime.utcnow()
        questions = await self.quiz_crud.get_quiz_questions(quiz["id"])
        attempts = await self.submission_crud.get_attempts(submission["id"])

        update = self._totals(quiz, questions, attempts, now)
        update.update({
            "status": (SubmissionStatusEnum.timed_out if timed_out else SubmissionStatusEnum.completed).value,
            "grade_status": (
                GradeStatusEnum.pending if self._needs_manual_grading(quiz, attempts) else GradeStatusEnum.auto_graded
            ).value,
            "completed_at": now,
            "time_taken": int((now - naive_utc(submission["started_at"])).total_seconds()),
        })
        logger.info(
            f"✅ Submission {submission['id']} finalized: {update['total_score']}/{update['max_score']} "
            f"({update['percentage']}%) {update['status']}"
        )
        return await self.submission_crud.update_submission(submission["id"], update)

    # -- instructor grading -------------------------------------------------

    async def get_detail(self, submission: Dict[str, Any], include_answers: bool = True) -> Dict[str, Any]:
        attempts = await self.submission_crud.get_attempts(submission["id"])
        if not include_answers:
            attempts = [hide_answer_key(a) for a in attempts]
        return {**submission, "attempts": attempts}

    async def get_student_detail(self, submission: Dict[str, Any], quiz: Dict[str, Any]) -> Dict[str, Any]:
        """The submission as its student may see it; per-question results stay hidden until released."""
        if not results_visible(submission, quiz):
            return {**submission, "attempts": []}
        return await self.get_detail(submission, include_answers=bool(quiz.get("show_correct_answers")))

    async def _recompute(self, submission: Dict[str, Any], quiz: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
        questions = await self.quiz_crud.get_quiz_questions(quiz["id"])
        attempts = await self.submission_crud.get_attempts(submission["id"])
        submitted_at = naive_utc(submission.get("completed_at")) or datetime.utcnow()
        update = self._totals(quiz, questions, attempts, submitted_at)
        update.update(extra)
        return await self.submission_crud.update_submission(submission["id"], update)

    async def manual_grade(
        self,
        submission_id: str,
        grades: Dict[str, float],
        grader: User,
        feedback: Optional[str] = None
    ) -> Dict[str, Any]:
        submission = await self.get_submission(submission_id)
        if submission["status"] == SubmissionStatusEnum.in_progress.value:
            raise HTTPException(status_code=400, detail="Submission has not been submitted yet")
        quiz = await self._get_quiz(submission["quiz_id"])
        questions = {q["id"]: q for q in await self.quiz_crud.get_quiz_questions(quiz["id"])}

        # Validate everything before touching any attempt
        for question_id, points in grades.items():
            question = questions.get(question_id)
            if not question:
                raise HTTPException(status_code=400, detail=f"Question {question_id} is not part of this quiz")
            max_points = question_points(question)
            if points < 0 or points > max_points:
                raise HTTPException(
                    status_code=400,
                    detail=f"Grade for question {question_id} must be between 0 and {max_points:g}"
                )

        for question_id, points in grades.items():
            max_points = question_points(questions[question_id])
            graded = {
                "points_earned": round(points, 2),
                "is_correct": points >= max_points,
                "requires_manual_grading": False,
                "manually_graded": True,
            }
            attempt = await self.submission_crud.get_attempt(submission_id, question_id)
            if attempt:
                await self.submission_crud.update_attempt(attempt["id"], graded)
            else:
                await self.submission_crud.create_attempt(QuizAttempt(
                    submission_id=submission_id,
                    question_id=question_id,
                    correct_answer=normalize_correct_answer(questions[question_id]),
                    max_points=max_points,
                    **graded
                ))

        extra: Dict[str, Any] = {
            "grade_status": GradeStatusEnum.graded.value,
            "graded_by": grader.id,
            "graded_at": datetime.utcnow(),
        }
        if feedback is not None:
            extra["feedback"] = feedback
        logger.info(f"🖊️ {grader.username} graded {len(grades)} question(s) of submission {submission_id}")
        return await self._recompute(submission, quiz, extra)

    async def regrade(self, submission_id: str) -> Dict[str, Any]:
        """Re-run automatic grading over stored attempts, leaving manual grades alone."""
        submission = await self.get_submission(submission_id)
        quiz = await self._get_quiz(submission["quiz_id"])
        questions = {q["id"]: q for q in await self.quiz_crud.get_quiz_questions(quiz["id"])}
        config = quiz_grading_config(quiz)

        regraded = 0
        for attempt in await self.submission_crud.get_attempts(submission_id):
            question = questions.get(attempt["question_id"])
            if attempt.get("manually_graded") or not question:
                continue
            result = await self.grader.grade_with_config(
                question, attempt.get("submitted_answer"), resolve_config(question, config)
            )
            await self.submission_crud.update_attempt(attempt["id"], {
                "correct_answer": normalize_correct_answer(question),
                "is_correct": result.is_correct,
                "points_earned": result.points_earned,
                "max_points": result.max_points,
                "feedback": result.feedback,
                "requires_manual_grading": result.requires_manual_grading,
                "detailed_feedback": result.detailed_feedback,
            })
            regraded += 1

        logger.info(f"🔁 Regraded {regraded} attempt(s) of submission {submission_id}")
        if submission["status"] == SubmissionStatusEnum.in_progress.value:
            return submission

        attempts = await self.submission_crud.get_attempts(submission_id)
        if self._needs_manual_grading(quiz, attempts):
            grade_status = GradeStatusEnum.pending
        elif any(a.get("manually_graded") for a in attempts):
            grade_status = GradeStatusEnum.graded
        else:
            grade_status = GradeStatusEnum.auto_graded
        return await self._recompute(submission, quiz, {"grade_status": grade_status.value})

    async def update_feedback(self, submission_id: str, feedback: str) -> Dict[str, Any]:
        await self.get_submission(submission_id)
        return await self.submission_crud.update_submission(submission_id, {"feedback": feedback})

    async def analytics(self, quiz_id: str) -> Dict[str, Any]:
        quiz = await self._get_quiz(quiz_id)
        questions = await self.quiz_crud.get_quiz_questions(quiz_id)
        submissions = await self.submission_crud.get_submissions(
            {"quiz_id": quiz_id, "status": {"$ne": SubmissionStatusEnum.in_progress.value}}
        )
        percentages = [s.get("percentage", 0) for s in submissions]
        distribution = {letter: 0 for letter in GRADE_LETTERS}
        for s in submissions:
            if s.get("letter_grade") in distribution:
                distribution[s["letter_grade"]] += 1

        attempts = await self.submission_crud.get_attempts_for_submissions([s["id"] for s in submissions])
        by_question: Dict[str, List[Dict[str, Any]]] = {}
        for attempt in attempts:
            by_question.setdefault(attempt["question_id"], []).append(attempt)

        question_stats = []
        for question in questions:
            answered = by_question.get(question["id"], [])
            count = len(answered)
            question_stats.append({
                "question_id": question["id"],
                "question_text": question["question_text"],
                "question_type": question["question_type"],
                "attempts": count,
                "correct_rate": round(sum(1 for a in answered if a["is_correct"]) / count * 100, 2) if count else 0.0,
                "average_points": round(sum(a["points_earned"] for a in answered) / count, 2) if count else 0.0,
            })

        total = len(submissions)
        return {
            "quiz_id": quiz["id"],
            "total_submissions": total,
            "average_percentage": round(sum(percentages) / total, 2) if total else 0.0,
            "highest_percentage": max(percentages) if total else 0.0,
            "lowest_percentage": min(percentages) if total else 0.0,
            "pass_rate": round(sum(1 for s in submissions if s.get("passed")) / total * 100, 2) if total else 0.0,
            "grade_distribution": distribution,
            "questions": question_stats,
        }
