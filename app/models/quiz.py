# app/models/quiz.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.sql import func

from app.core.database import Base

# Question types
QUESTION_TYPE_MCQ = "mcq"
QUESTION_TYPE_TRUE_FALSE = "true_false"
QUESTION_TYPE_SHORT_DESC = "short_desc"

# Quiz availability
QUIZ_STATUS_DRAFT = "draft"
QUIZ_STATUS_PUBLISHED = "published"
QUIZ_STATUS_ARCHIVED = "archived"


class Quiz(Base):
    """Quiz definition. Read-only to the attempt engine."""

    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    difficulty = Column(String(20), nullable=True)  # easy, medium, hard

    # draft, published, archived (only published is open to learners)
    status = Column(String(20), default=QUIZ_STATUS_DRAFT, nullable=False, index=True)

    # Attempt settings
    timer_seconds = Column(Integer, nullable=True)  # null = untimed
    allow_multiple_attempts = Column(Boolean, default=True, nullable=False)
    max_attempts = Column(Integer, nullable=True)  # null = unlimited

    # Negative marking (penalty per wrong answer when enabled)
    negative_marking = Column(Boolean, default=False, nullable=False)
    negative_mark_value = Column(Numeric(5, 2), default=0, nullable=False)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<Quiz(id={self.id}, title='{self.title}', status='{self.status}')>"


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(
        Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # mcq, true_false, short_desc
    type = Column(String(24), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    text = Column(Text, nullable=True)
    prompt = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)

    points = Column(Integer, default=1, nullable=False)
    multiple_correct = Column(Boolean, nullable=True)  # mcq only
    correct_boolean = Column(Boolean, nullable=True)  # true_false only
    requires_manual_grading = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<Question(id={self.id}, quiz_id={self.quiz_id}, type='{self.type}')>"


class QuestionOption(Base):
    __tablename__ = "question_options"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    text = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    is_correct = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<QuestionOption(id={self.id}, question_id={self.question_id})>"
