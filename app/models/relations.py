# app/models/relations.py

from sqlalchemy.orm import relationship

# Import all relevant models
from .attempt_answer import AttemptAnswer
from .quiz import Question, QuestionOption, Quiz
from .quiz_attempt import QuizAttempt
from .quiz_enrollment import QuizEnrollment
from .user import User


def setup_relationships():
    """
    Configure all SQLAlchemy relationships between models.
    """

    # --- Quiz definition ---

    # 1. Quiz to Questions (One-to-Many), in quiz order
    Quiz.questions = relationship(
        "Question",
        back_populates="quiz",
        order_by=Question.order_index,
        cascade="all, delete-orphan",
    )
    Question.quiz = relationship("Quiz", back_populates="questions")

    # 2. Question to Options (One-to-Many), in display order
    Question.options = relationship(
        "QuestionOption",
        back_populates="question",
        order_by=QuestionOption.order_index,
        cascade="all, delete-orphan",
    )
    QuestionOption.question = relationship("Question", back_populates="options")

    # 3. Quiz owner
    Quiz.owner = relationship("User")

    # --- Enrollment ---
    QuizEnrollment.user = relationship("User")
    QuizEnrollment.quiz = relationship("Quiz")

    # --- Attempts ---

    # 4. User / Quiz to Attempts (One-to-Many)
    User.quiz_attempts = relationship("QuizAttempt", back_populates="user")
    QuizAttempt.user = relationship("User", back_populates="quiz_attempts")
    Quiz.attempts = relationship("QuizAttempt", back_populates="quiz")
    QuizAttempt.quiz = relationship("Quiz", back_populates="attempts")

    # 5. Attempt to graded answers (One-to-Many)
    QuizAttempt.answers = relationship(
        "AttemptAnswer",
        back_populates="attempt",
        order_by=AttemptAnswer.id,
        cascade="all, delete-orphan",
    )
    AttemptAnswer.attempt = relationship("QuizAttempt", back_populates="answers")
    AttemptAnswer.question = relationship("Question")
    AttemptAnswer.selected_option = relationship("QuestionOption")
