"""
Pytest configuration and fixtures

Every test gets a fresh in-memory MongoDB (mongomock-motor) behind
``database.get_database``. The API is exercised through FastAPI's TestClient
without entering its lifespan, so no real Mongo connection is attempted.
"""
import pytest
from mongomock_motor import AsyncMongoMockClient

import database
from utils.security import create_access_token

pytest.importorskip("httpx")  # FastAPI TestClient requires httpx

from fastapi.testclient import TestClient  # noqa: E402

import main  # noqa: E402

PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def mock_db():
    """Swap the Mongo client for an in-memory one for the duration of a test."""
    database.mongodb.client = AsyncMongoMockClient()
    database.mongodb.is_connected = True
    yield database.mongodb.client
    database.mongodb.client = None
    database.mongodb.is_connected = False


@pytest.fixture
def client():
    return TestClient(main.app)


def auth_headers(user: dict) -> dict:
    token = create_access_token({"sub": user["email"], "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def create_user(client):
    """Sign up a user through the API and return (user, auth headers)."""
    def _create(username: str, role: str = "student", headers: dict = None):
        response = client.post("/users/signup", json={
            "full_name": username.title(),
            "username": username,
            "email": f"{username}@school.edu",
            "password": PASSWORD,
            "role": role,
        }, headers=headers or {})
        assert response.status_code == 201, response.text
        user = response.json()
        return user, auth_headers(user)
    return _create


@pytest.fixture
def admin(create_user):
    # the first account on a fresh database becomes the admin
    return create_user("root", role="student")


@pytest.fixture
def instructor(admin, create_user):
    return create_user("teacher", role="instructor")


@pytest.fixture
def student(admin, create_user):
    return create_user("alice")


@pytest.fixture
def other_student(admin, create_user):
    return create_user("bob")


@pytest.fixture
def course(client, instructor, student):
    """An active course taught by ``instructor`` with ``student`` enrolled."""
    _, instructor_headers = instructor
    _, student_headers = student
    response = client.post("/courses/", json={"title": "Algorithms", "code": "CS201"}, headers=instructor_headers)
    assert response.status_code == 201, response.text
    created = response.json()

    response = client.post(f"/courses/{created['id']}/enroll", headers=student_headers)
    assert response.status_code == 201, response.text
    return created


@pytest.fixture
def make_quiz(client, instructor, course):
    """Create a quiz with the given questions and publish it."""
    _, headers = instructor

    def _make(questions, publish=True, **quiz_fields):
        payload = {"course_id": course["id"], "title": "Weekly quiz", "max_attempts": 2}
        payload.update(quiz_fields)
        response = client.post("/quizzes/", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        quiz = response.json()

        created = []
        for question in questions:
            response = client.post(f"/quizzes/{quiz['id']}/questions", json=question, headers=headers)
            assert response.status_code == 201, response.text
            created.append(response.json())

        if publish:
            response = client.put(f"/quizzes/{quiz['id']}/status", json={"status": "published"}, headers=headers)
            assert response.status_code == 200, response.text
            quiz = response.json()
        return quiz, created

    return _make

