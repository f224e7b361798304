# app/services/quiz.py
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import NotFound
from app.models.quiz import Question, Quiz


class QuizService:
    """Read-only access to quiz definitions."""

    def __init__(self, db: Session):
        self.db = db

    def find_quiz_with_questions(self, quiz_id: int) -> Optional[Quiz]:
        """Quiz with questions and options, both ordered by order_index."""
        return (
            self.db.query(Quiz)
            .options(selectinload(Quiz.questions).selectinload(Question.options))
            .filter(Quiz.id == quiz_id)
            .first()
        )

    def get_quiz_with_questions(self, quiz_id: int) -> Quiz:
        quiz = self.find_quiz_with_questions(quiz_id)
        if not quiz:
            raise NotFound("Quiz not found")
        return quiz
