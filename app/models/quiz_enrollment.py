# app/models/quiz_enrollment.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base


class QuizEnrollment(Base):
    """
    A learner's right to attempt a quiz. Created by the enrollment/payment
    flow; the attempt engine only checks for existence.
    """

    __tablename__ = "quiz_enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "quiz_id", name="uq_quiz_enrollments_user_quiz"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False, index=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<QuizEnrollment(user_id={self.user_id}, quiz_id={self.quiz_id})>"
