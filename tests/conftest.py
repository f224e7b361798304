"""
Shared fixtures for the quiz attempt engine tests.

The suite runs against an in-memory SQLite database; the settings below must
be in place before any ``app`` module is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("LOG_FILE", "logs/test.log")

import pytest
from fastapi.testclient import TestClient

from app.core.database import Base, SessionLocal, engine, get_db
from app.core.dependencies import get_current_user
from app.models import Question, QuestionOption, Quiz, QuizEnrollment, User
from app.models.quiz import (
    QUESTION_TYPE_MCQ,
    QUESTION_TYPE_SHORT_DESC,
    QUESTION_TYPE_TRUE_FALSE,
    QUIZ_STATUS_PUBLISHED,
)


@pytest.fixture
def db():
    """Fresh schema and session per test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


# ==================== Factories ====================


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role="student", is_active=True):
        counter["n"] += 1
        user = User(
            full_name=f"User {counter['n']}",
            email=f"user{counter['n']}@example.com",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_quiz(db, make_user):
    """
    Build a quiz from question definitions:
      ("mcq", [True, False, ...], multiple_correct, points)
      ("true_false", correct_boolean, points)
      ("short_desc", points)
    """

    def _make_quiz(questions, owner=None, **quiz_fields):
        owner = owner or make_user(role="teacher")
        fields = {
            "title": "Sample quiz",
            "status": QUIZ_STATUS_PUBLISHED,
            "allow_multiple_attempts": True,
            "negative_marking": False,
            "negative_mark_value": 0,
        }
        fields.update(quiz_fields)
        quiz = Quiz(owner_id=owner.id, **fields)
        db.add(quiz)
        db.flush()

        for index, definition in enumerate(questions):
            kind = definition[0]
            if kind == QUESTION_TYPE_MCQ:
                _, flags, multiple, points = definition
                question = Question(
                    quiz_id=quiz.id,
                    type=kind,
                    order_index=index,
                    text=f"Question {index + 1}",
                    multiple_correct=multiple,
                    points=points,
                )
                question.options = [
                    QuestionOption(text=f"Option {i}", order_index=i, is_correct=flag)
                    for i, flag in enumerate(flags)
                ]
            elif kind == QUESTION_TYPE_TRUE_FALSE:
                _, correct_boolean, points = definition
                question = Question(
                    quiz_id=quiz.id,
                    type=kind,
                    order_index=index,
                    text=f"Question {index + 1}",
                    correct_boolean=correct_boolean,
                    points=points,
                )
            else:
                _, points = definition
                question = Question(
                    quiz_id=quiz.id,
                    type=QUESTION_TYPE_SHORT_DESC,
                    order_index=index,
                    text=f"Question {index + 1}",
                    points=points,
                )
            db.add(question)

        db.commit()
        db.refresh(quiz)
        return quiz

    return _make_quiz


@pytest.fixture
def enroll(db):
    def _enroll(user, quiz):
        db.add(QuizEnrollment(user_id=user.id, quiz_id=quiz.id))
        db.commit()

    return _enroll


@pytest.fixture
def student(make_user):
    return make_user(role="student")


# ==================== HTTP ====================


@pytest.fixture
def client(db, student):
    """TestClient authenticated as ``student`` and bound to the test session"""
    from main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = lambda: student
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
