# app/models/attempt_answer.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.sql import func

from app.core.database import Base


class AttemptAnswer(Base):
    """
    Graded answer for one question of a submitted attempt.
    Rows are replaced wholesale at submission and never updated afterwards.
    """

    __tablename__ = "attempt_answers"

    id = Column(Integer, primary_key=True, index=True)
    quiz_attempt_id = Column(
        Integer,
        ForeignKey("quiz_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )

    # Single-select mcq only
    selected_option_id = Column(
        Integer, ForeignKey("question_options.id", ondelete="SET NULL"), nullable=True
    )
    # Short text, "true"/"false", or a JSON array of option ids
    answer_text = Column(Text, nullable=True)

    is_correct = Column(Boolean, default=False, nullable=False)
    time_spent_seconds = Column(Integer, default=0, nullable=False)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return (
            f"<AttemptAnswer(attempt_id={self.quiz_attempt_id}, "
            f"question_id={self.question_id}, is_correct={self.is_correct})>"
        )
