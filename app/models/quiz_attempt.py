# app/models/quiz_attempt.py
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.sql import func

from app.core.database import Base, JSONType

# Attempt states
ATTEMPT_IN_PROGRESS = "in_progress"
ATTEMPT_COMPLETED = "completed"
ATTEMPT_ABANDONED = "abandoned"

ATTEMPT_STATUSES = (ATTEMPT_IN_PROGRESS, ATTEMPT_COMPLETED, ATTEMPT_ABANDONED)


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        Index("ix_quiz_attempts_user_quiz", "user_id", "quiz_id"),
        Index("ix_quiz_attempts_user_status", "user_id", "status"),
        # At most one in-progress attempt per (user, quiz)
        Index(
            "uq_quiz_attempts_active",
            "user_id",
            "quiz_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    quiz_id = Column(
        Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False
    )

    # in_progress, completed, abandoned
    status = Column(String(20), default=ATTEMPT_IN_PROGRESS, nullable=False, index=True)

    # Denormalized projection of `progress` (see services/quiz_progress.py)
    current_question_index = Column(Integer, default=0, nullable=False)
    total_questions = Column(Integer, default=0, nullable=False)  # frozen at start
    time_spent_seconds = Column(Integer, default=0, nullable=False)
    remaining_time_seconds = Column(Integer, nullable=True)  # null for untimed quizzes

    # Results (populated on completion)
    score = Column(Numeric(5, 2), nullable=True)  # 0-100 percentage
    earned_points = Column(Numeric(8, 2), nullable=True)
    penalty_points = Column(Numeric(8, 2), nullable=True)
    correct_answers = Column(Integer, default=0, nullable=False)
    incorrect_answers = Column(Integer, default=0, nullable=False)

    # {currentQuestionIndex, totalQuestions, answeredQuestions, answers,
    #  timeSpent, lastActivityAt, completionPercentage}
    progress = Column(JSONType, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

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

    @property
    def is_in_progress(self) -> bool:
        return self.status == ATTEMPT_IN_PROGRESS

    @property
    def is_completed(self) -> bool:
        return self.status == ATTEMPT_COMPLETED

    def __repr__(self):
        return (
            f"<QuizAttempt(id={self.id}, user_id={self.user_id}, "
            f"status='{self.status}', score={self.score})>"
        )
