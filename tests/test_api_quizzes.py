"""
API tests for authoring quizzes and taking them
"""
import pytest

from constants import MULTIPLE_CHOICE, NUMERICAL, SHORT_ANSWER_MANUAL, SINGLE_CHOICE


class TestQuizAuthoring:

    def test_publish_requires_questions(self, client, instructor, make_quiz):
        quiz, _ = make_quiz([], publish=False)
        assert quiz["status"] == "draft"

        response = client.put(f"/quizzes/{quiz['id']}/status", json={"status": "published"}, headers=instructor[1])
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot publish a quiz without questions"

    def test_end_date_before_start_date(self, client, instructor, course):
        response = client.post("/quizzes/", json={
            "course_id": course["id"],
            "title": "Backwards",
            "start_date": "2030-01-02T00:00:00Z",
            "end_date": "2030-01-01T00:00:00Z",
        }, headers=instructor[1])
        assert response.status_code == 422

    def test_other_instructor_cannot_author(self, client, create_user, course):
        _, headers = create_user("other_teacher", role="instructor")
        response = client.post("/quizzes/", json={"course_id": course["id"], "title": "Nope"}, headers=headers)
        assert response.status_code == 403

    def test_invalid_question_is_rejected(self, client, instructor, make_quiz):
        quiz, _ = make_quiz([], publish=False)
        response = client.post(f"/quizzes/{quiz['id']}/questions", json={
            "question_type": "single_choice",
            "question_text": "Pick one",
            "question_data": {"options": ["a", "b"], "correct_option_index": 5},
        }, headers=instructor[1])
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "Question validation failed"
        assert "Correct option index must be a valid index within the options array" in detail["errors"]

    def test_question_data_as_json_string(self, client, instructor, make_quiz):
        quiz, _ = make_quiz([], publish=False)
        response = client.post(f"/quizzes/{quiz['id']}/questions", json={
            "question_type": "single_choice",
            "question_text": "Pick one",
            "question_data": '{"options": ["a", "b"], "correct_option_index": 0}',
        }, headers=instructor[1])
        assert response.status_code == 201
        assert response.json()["question_data"]["correct_option_index"] == 0

    def test_warnings_are_returned(self, make_quiz):
        _, (question,) = make_quiz([SHORT_ANSWER_MANUAL], publish=False)
        assert question["warnings"] == ["No keywords defined - answers will require manual grading"]

    def test_questions_are_numbered_in_order(self, make_quiz):
        _, questions = make_quiz([SINGLE_CHOICE, MULTIPLE_CHOICE], publish=False)
        assert [q["order"] for q in questions] == [1, 2]

    def test_bulk_add_reports_failing_index(self, client, instructor, make_quiz):
        quiz, _ = make_quiz([], publish=False)
        bad = {**SINGLE_CHOICE, "question_data": {"options": ["only"], "correct_option_index": 0}}
        response = client.post(
            f"/quizzes/{quiz['id']}/questions/bulk", json={"questions": [SINGLE_CHOICE, bad]}, headers=instructor[1]
        )
        assert response.status_code == 400
        assert response.json()["detail"]["question_index"] == 2
        assert client.get(f"/quizzes/{quiz['id']}/questions", headers=instructor[1]).json() == []

    def test_bulk_add(self, client, instructor, make_quiz):
        quiz, _ = make_quiz([], publish=False)
        response = client.post(
            f"/quizzes/{quiz['id']}/questions/bulk",
            json={"questions": [SINGLE_CHOICE, MULTIPLE_CHOICE]},
            headers=instructor[1],
        )
        assert response.status_code == 201
        assert len(response.json()) == 2

    def test_reorder(self, client, instructor, make_quiz):
        quiz, questions = make_quiz([SINGLE_CHOICE, MULTIPLE_CHOICE], publish=False)
        first, second = (q["id"] for q in questions)

        response = client.put(
            f"/quizzes/{quiz['id']}/questions/reorder", json={"question_ids": [second, first]}, headers=instructor[1]
        )
        assert response.status_code == 200
        assert [q["id"] for q in response.json()] == [second, first]

        response = client.put(
            f"/quizzes/{quiz['id']}/questions/reorder", json={"question_ids": [first]}, headers=instructor[1]
        )
        assert response.status_code == 400

    def test_legacy_answer_is_harmonized(self, client, instructor, make_quiz):
        legacy = {
            "question_type": "true_false",
            "question_text": "Binary search needs sorted input.",
            "question_data": {},
            "correct_answer": "false",
        }
        quiz, (question,) = make_quiz([legacy], publish=False)
        assert question["question_data"]["correct_answer"] is False

        response = client.post(f"/quizzes/{quiz['id']}/harmonize", headers=instructor[1])
        report = response.json()
        assert report["questions_checked"] == 1
        assert report["questions_updated"] == 0

    def test_update_question_revalidates(self, client, instructor, make_quiz):
        _, (question,) = make_quiz([SINGLE_CHOICE], publish=False)
        response = client.put(
            f"/quizzes/questions/{question['id']}",
            json={"question_data": {"options": ["Queue", "Stack"], "correct_option_index": 3}},
            headers=instructor[1],
        )
        assert response.status_code == 400

        response = client.put(
            f"/quizzes/questions/{question['id']}", json={"points": 3}, headers=instructor[1]
        )
        assert response.status_code == 200
        assert response.json()["points"] == 3

    def test_delete_question(self, client, instructor, make_quiz):
        quiz, (question,) = make_quiz([SINGLE_CHOICE], publish=False)
        assert client.delete(f"/quizzes/questions/{question['id']}", headers=instructor[1]).status_code == 204
        assert client.get(f"/quizzes/{quiz['id']}/questions", headers=instructor[1]).json() == []


class TestStudentView:

    def test_answer_keys_are_hidden(self, client, student, make_quiz):
        quiz, _ = make_quiz([SINGLE_CHOICE, MULTIPLE_CHOICE])
        response = client.get(f"/quizzes/{quiz['id']}/questions", headers=student[1])
        assert response.status_code == 200
        for question in response.json():
            assert question["correct_answer"] is None
            assert question["explanation"] is None
            assert question["grading_config"] is None
            assert "options" in question["question_data"]
            assert "correct_option_index" not in question["question_data"]
            assert "correct_option_indices" not in question["question_data"]

    def test_drafts_are_hidden_from_students(self, client, student, make_quiz):
        quiz, _ = make_quiz([SINGLE_CHOICE], publish=False)
        assert client.get(f"/quizzes/{quiz['id']}", headers=student[1]).status_code == 404
        assert client.get(f"/quizzes/{quiz['id']}/questions", headers=student[1]).status_code == 404

    def test_available_quizzes(self, client, student, other_student, make_quiz):
        quiz, _ = make_quiz([SINGLE_CHOICE])
        make_quiz([SINGLE_CHOICE], publish=False)

        assert [q["id"] for q in client.get("/quizzes/available", headers=student[1]).json()] == [quiz["id"]]
        assert client.get("/quizzes/available", headers=other_student[1]).json() == []


class TestTakingAQuiz:

    @pytest.fixture
    def quiz(self, make_quiz):
        return make_quiz([SINGLE_CHOICE, MULTIPLE_CHOICE])

    def start(self, client, student, quiz_id):
        response = client.post(f"/quiz-attempts/start/{quiz_id}", headers=student[1])
        assert response.status_code == 200, response.text
        return response.json()

    def test_start_and_resume(self, client, student, quiz):
        first = self.start(client, student, quiz[0]["id"])
        assert first["status"] == "in_progress"
        assert first["attempt_number"] == 1

        again = self.start(client, student, quiz[0]["id"])
        assert again["id"] == first["id"]

    def test_not_enrolled(self, client, other_student, quiz):
        response = client.post(f"/quiz-attempts/start/{quiz[0]['id']}", headers=other_student[1])
        assert response.status_code == 403

    def test_unpublished(self, client, student, make_quiz):
        draft, _ = make_quiz([SINGLE_CHOICE], publish=False)
        response = client.post(f"/quiz-attempts/start/{draft['id']}", headers=student[1])
        assert response.status_code == 400
        assert response.json()["detail"] == "Quiz is not published"

    def test_answer_then_submit(self, client, student, quiz):
        _, (single, multiple) = quiz
        submission = self.start(client, student, quiz[0]["id"])
        sid = submission["id"]

        response = client.post(f"/quiz-attempts/{sid}/answer/{single['id']}", json={"answer": 1}, headers=student[1])
        assert response.status_code == 201
        attempt = response.json()
        assert attempt["is_correct"] is True
        assert attempt["points_earned"] == 2

        response = client.post(f"/quiz-attempts/{sid}/answer/{single['id']}", json={"answer": 0}, headers=student[1])
        assert response.status_code == 400
        assert response.json()["detail"] == "Question has already been answered"

        status = client.get(f"/quiz-attempts/{sid}/status", headers=student[1]).json()
        assert status["answered_question_ids"] == [single["id"]]
        assert status["total_questions"] == 2

        response = client.post(f"/quiz-attempts/{sid}/submit", headers=student[1])
        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "completed"
        assert result["grade_status"] == "auto_graded"
        assert result["total_score"] == 2
        assert result["max_score"] == 6
        assert result["percentage"] == 33.33
        assert result["letter_grade"] == "F"
        assert result["passed"] is False

        response = client.post(f"/quiz-attempts/{sid}/submit", headers=student[1])
        assert response.json()["detail"] == "Submission has already been submitted"

    def test_answer_after_submit(self, client, student, quiz):
        _, (single, _) = quiz
        sid = self.start(client, student, quiz[0]["id"])["id"]
        client.post(f"/quiz-attempts/{sid}/submit", headers=student[1])

        response = client.post(f"/quiz-attempts/{sid}/answer/{single['id']}", json={"answer": 1}, headers=student[1])
        assert response.status_code == 400

    def test_submission_belongs_to_student(self, client, student, create_user, course, instructor, quiz):
        sid = self.start(client, student, quiz[0]["id"])["id"]
        _, (single, _) = quiz
        bob, bob_headers = create_user("bob")
        client.post(f"/courses/{course['id']}/enrollments", json={"student_id": bob["id"]}, headers=instructor[1])

        response = client.post(f"/quiz-attempts/{sid}/answer/{single['id']}", json={"answer": 1}, headers=bob_headers)
        assert response.status_code == 403

    def test_bulk_answers_skip_unknown_questions(self, client, student, quiz):
        _, (single, multiple) = quiz
        sid = self.start(client, student, quiz[0]["id"])["id"]
        response = client.post(f"/quiz-attempts/{sid}/answers", json={"answers": [
            {"question_id": single["id"], "answer": 1},
            {"question_id": multiple["id"], "answer": [0, 2]},
            {"question_id": "unknown", "answer": 1},
        ]}, headers=student[1])
        assert response.status_code == 200
        assert [a["is_correct"] for a in response.json()] == [True, True]

    def test_max_attempts(self, client, student, quiz):
        for _ in range(2):
            sid = self.start(client, student, quiz[0]["id"])["id"]
            client.post(f"/quiz-attempts/{sid}/submit", headers=student[1])

        response = client.post(f"/quiz-attempts/start/{quiz[0]['id']}", headers=student[1])
        assert response.status_code == 400
        assert response.json()["detail"] == "Maximum number of attempts reached"
        assert len(client.get("/quiz-attempts/history", headers=student[1]).json()) == 2

    def test_submit_all_at_once(self, client, student, quiz):
        _, (single, multiple) = quiz
        response = client.post(f"/quizzes/{quiz[0]['id']}/submit", json={
            "answers": {single["id"]: 1, multiple["id"]: [0, 2]},
        }, headers=student[1])
        assert response.status_code == 200
        result = response.json()
        assert result["percentage"] == 100
        assert result["letter_grade"] == "A"
        assert result["passed"] is True
        assert len(result["attempts"]) == 2
        # correct answers are hidden unless the quiz shows them
        assert all(a["correct_answer"] is None for a in result["attempts"])

    def test_manual_question_leaves_grading_pending(self, client, student, make_quiz):
        quiz, (single, essay) = make_quiz([SINGLE_CHOICE, SHORT_ANSWER_MANUAL])
        response = client.post(f"/quizzes/{quiz['id']}/submit", json={
            "answers": {single["id"]: 1, essay["id"]: "It spreads cost over a sequence of operations."},
        }, headers=student[1])
        result = response.json()
        assert result["grade_status"] == "pending"
        assert result["total_score"] == 2
        assert result["max_score"] == 7


class TestResults:

    def finish(self, client, student, quiz_id):
        sid = client.post(f"/quiz-attempts/start/{quiz_id}", headers=student[1]).json()["id"]
        client.post(f"/quiz-attempts/{sid}/submit", headers=student[1])
        return sid

    def test_results_while_in_progress(self, client, student, make_quiz):
        quiz, _ = make_quiz([SINGLE_CHOICE])
        sid = client.post(f"/quiz-attempts/start/{quiz['id']}", headers=student[1]).json()["id"]
        response = client.get(f"/quiz-attempts/{sid}/results", headers=student[1])
        assert response.status_code == 400

    def test_results_shown_immediately(self, client, student, make_quiz):
        quiz, _ = make_quiz([SINGLE_CHOICE], show_correct_answers=True)
        sid = self.finish(client, student, quiz["id"])
        response = client.get(f"/quiz-attempts/{sid}/results", headers=student[1])
        assert response.status_code == 200
        assert response.json()["id"] == sid

    def test_results_held_back_until_completed(self, client, instructor, student, make_quiz):
        quiz, _ = make_quiz([SINGLE_CHOICE], show_results_immediately=False)
        sid = self.finish(client, student, quiz["id"])

        response = client.get(f"/quiz-attempts/{sid}/results", headers=student[1])
        assert response.status_code == 403
        assert response.json()["detail"] == "Results are not available yet"

        client.put(f"/quizzes/{quiz['id']}/status", json={"status": "completed"}, headers=instructor[1])
        assert client.get(f"/quiz-attempts/{sid}/results", headers=student[1]).status_code == 200


class TestAnswerKeyStaysHidden:

    def start(self, client, student, quiz_id):
        return client.post(f"/quiz-attempts/start/{quiz_id}", headers=student[1]).json()["id"]

    def test_answer_response_withholds_the_key(self, client, student, make_quiz):
        quiz, (single, numerical) = make_quiz([SINGLE_CHOICE, NUMERICAL])
        sid = self.start(client, student, quiz["id"])

        response = client.post(f"/quiz-attempts/{sid}/answer/{single['id']}", json={"answer": 0}, headers=student[1])
        assert response.status_code == 201
        body = response.json()
        assert "correct_answer" not in body
        assert "detailed_feedback" not in body
        assert body["is_correct"] is False

        response = client.post(
            f"/quiz-attempts/{sid}/answer/{numerical['id']}", json={"answer": 300000000}, headers=student[1]
        )
        body = response.json()
        assert body["is_correct"] is False
        assert body["feedback"] == "Incorrect answer"
        assert "299792458" not in response.text

    def test_bulk_answers_withhold_the_key(self, client, student, make_quiz):
        quiz, (numerical,) = make_quiz([NUMERICAL])
        sid = self.start(client, student, quiz["id"])
        response = client.post(f"/quiz-attempts/{sid}/answers", json={"answers": [
            {"question_id": numerical["id"], "answer": 1},
        ]}, headers=student[1])
        assert response.status_code == 200
        assert "299792458" not in response.text
        assert "correct_answer" not in response.json()[0]

    def test_key_is_shown_when_the_quiz_allows_it(self, client, student, make_quiz):
        quiz, (numerical,) = make_quiz([NUMERICAL], show_correct_answers=True)
        sid = self.start(client, student, quiz["id"])
        response = client.post(f"/quiz-attempts/{sid}/answer/{numerical['id']}", json={"answer": 1}, headers=student[1])
        assert response.json()["feedback"] == "Expected 299792458 m/s (tolerance: ±0.5)"

    def test_scores_wait_for_results(self, client, student, make_quiz):
        quiz, (single,) = make_quiz([SINGLE_CHOICE], show_results_immediately=False)
        sid = self.start(client, student, quiz["id"])
        response = client.post(f"/quiz-attempts/{sid}/answer/{single['id']}", json={"answer": 1}, headers=student[1])
        body = response.json()
        assert body["max_points"] == 2
        assert body["is_correct"] is None
        assert body["points_earned"] is None
        assert body["feedback"] is None

    def test_submit_all_honours_result_visibility(self, client, student, make_quiz):
        quiz, (single,) = make_quiz([SINGLE_CHOICE], show_results_immediately=False)
        response = client.post(
            f"/quizzes/{quiz['id']}/submit", json={"answers": {single["id"]: 0}}, headers=student[1]
        )
        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "completed"
        assert result["attempts"] == []

        response = client.get(f"/quiz-attempts/{result['id']}/results", headers=student[1])
        assert response.status_code == 403

    def test_results_drop_the_expected_value(self, client, student, make_quiz):
        quiz, (numerical,) = make_quiz([NUMERICAL])
        result = client.post(
            f"/quizzes/{quiz['id']}/submit", json={"answers": {numerical["id"]: 12}}, headers=student[1]
        ).json()
        (attempt,) = result["attempts"]
        assert attempt["correct_answer"] is None
        assert "expected" not in attempt["detailed_feedback"]
        assert attempt["feedback"] == "Incorrect answer"

        response = client.get(f"/quiz-attempts/{result['id']}/results", headers=student[1])
        assert response.status_code == 200
        assert "299792458" not in response.text
