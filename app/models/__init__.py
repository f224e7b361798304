"""
Models package initialization
Import all models and setup relationships
"""

from .attempt_answer import AttemptAnswer
from .quiz import Question, QuestionOption, Quiz
from .quiz_attempt import QuizAttempt
from .quiz_enrollment import QuizEnrollment

# Import and setup relationships
from .relations import setup_relationships
from .user import User

# Setup all relationships after models are imported
setup_relationships()

# Make models available at package level
__all__ = [
    "AttemptAnswer",
    "Question",
    "QuestionOption",
    "Quiz",
    "QuizAttempt",
    "QuizEnrollment",
    "User",
]
