# app/services/quiz_attempt.py
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.decorator import db_exception
from app.core.exceptions import (
    Forbidden,
    InternalError,
    InvalidState,
    QuizAttemptError,
    QuotaExceeded,
    ValidationFailed,
)
from app.models.attempt_answer import AttemptAnswer
from app.models.quiz import QUIZ_STATUS_PUBLISHED, Quiz
from app.models.quiz_attempt import (
    ATTEMPT_ABANDONED,
    ATTEMPT_COMPLETED,
    ATTEMPT_IN_PROGRESS,
    ATTEMPT_STATUSES,
    QuizAttempt,
)
from app.models.user import User
from app.services.answer_normalizer import NormalizedAnswer, normalize_answer
from app.services.attempt_payloads import attempt_summary
from app.services.quiz import QuizService
from app.services.quiz_access import QuizAccessPolicy
from app.services.quiz_progress import (
    apply_projection,
    as_utc,
    build_progress_snapshot,
    load_owned_attempt,
    utcnow,
)
from app.services.scoring import ScoreSummary, aggregate_scores

logger = logging.getLogger(__name__)

OUTCOME_CREATED = "created"
OUTCOME_RESUME = "resume"


@dataclass
class AdmissionResult:
    attempt: QuizAttempt
    quiz: Quiz
    outcome: str  # created | resume


@dataclass
class SubmissionResult:
    attempt: QuizAttempt
    quiz: Quiz
    summary: ScoreSummary
    answers: Dict[str, Any]


class QuizAttemptService:
    def __init__(self, db: Session):
        self.db = db
        self.quizzes = QuizService(db)
        self.access = QuizAccessPolicy(db)

    # ==================== Admission ====================

    def begin(self, user: User, quiz_id: int, force_new: bool = False) -> AdmissionResult:
        """
        Start a quiz, or hand back the attempt already in progress.

        Without ``force_new`` an active attempt is returned unchanged, so a
        learner reloading the page never gets a second row. With ``force_new``
        the active attempt is abandoned and a fresh one created, subject to
        the attempt quota (owners and elevated roles are exempt).
        """
        quiz = self.quizzes.get_quiz_with_questions(quiz_id)

        if not self.access.can_access_quiz(user, quiz):
            logger.warning(f"User {user.id} denied quiz {quiz.id}: not enrolled")
            raise Forbidden("You need to enroll in this quiz before attempting it.")

        can_bypass = self.access.can_bypass_availability(user, quiz)
        if quiz.status != QUIZ_STATUS_PUBLISHED and not can_bypass:
            logger.warning(f"User {user.id} denied quiz {quiz.id}: status={quiz.status}")
            raise Forbidden("Quiz is not available")

        active_attempt = self._find_active_attempt(user.id, quiz.id)

        if active_attempt and not force_new:
            return AdmissionResult(active_attempt, quiz, OUTCOME_RESUME)

        if not can_bypass:
            self._enforce_attempt_quota(user.id, quiz, force_new)

        if active_attempt:
            active_attempt.status = ATTEMPT_ABANDONED
            # The active slot must be released before the new row is inserted
            self.db.flush()
            logger.info(f"Attempt {active_attempt.id} abandoned for a fresh start")

        attempt = self._initialize_attempt(user.id, quiz)
        self.db.add(attempt)

        try:
            self.db.commit()
        except IntegrityError:
            # Another request created the active attempt first
            self.db.rollback()
            existing = self._find_active_attempt(user.id, quiz.id)
            if existing:
                logger.info(
                    f"Concurrent start for user {user.id} on quiz {quiz.id}; "
                    f"resuming attempt {existing.id}"
                )
                return AdmissionResult(existing, quiz, OUTCOME_RESUME)
            logger.error(
                f"Failed to create attempt for user {user.id} on quiz {quiz.id}",
                exc_info=True,
            )
            raise InternalError("Failed to start quiz attempt")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create attempt: {type(e).__name__}", exc_info=True)
            raise InternalError("Failed to start quiz attempt") from e

        self.db.refresh(attempt)
        logger.info(f"Attempt {attempt.id} created for user {user.id} on quiz {quiz.id}")
        return AdmissionResult(attempt, quiz, OUTCOME_CREATED)

    def resume(self, user: User, attempt_id: int) -> Tuple[QuizAttempt, Quiz]:
        attempt = load_owned_attempt(self.db, attempt_id, user.id)
        if not attempt.is_in_progress:
            raise InvalidState("This attempt is no longer active.")

        quiz = self.quizzes.get_quiz_with_questions(attempt.quiz_id)
        if not self.access.can_access_quiz(user, quiz):
            raise Forbidden("You need to enroll in this quiz before attempting it.")

        return attempt, quiz

    def abandon(self, user: User, attempt_id: int) -> QuizAttempt:
        """Abandon an in-progress attempt; finished attempts are left as they are."""
        attempt = load_owned_attempt(self.db, attempt_id, user.id, for_update=True)
        if not attempt.is_in_progress:
            return attempt

        attempt.status = ATTEMPT_ABANDONED
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to abandon attempt {attempt_id}", exc_info=True)
            raise InternalError("Failed to abandon attempt") from e

        self.db.refresh(attempt)
        logger.info(f"Attempt {attempt.id} abandoned by user {user.id}")
        return attempt

    # ==================== Submission ====================

    def submit(
        self,
        user: User,
        attempt_id: int,
        answers: Optional[Mapping] = None,
        time_spent_seconds: Optional[int] = None,
    ) -> SubmissionResult:
        """
        Grade and complete an attempt in a single transaction.

        Existing answer rows are replaced, one row per quiz question is
        written, and the attempt is moved to ``completed`` with its frozen
        results. Any failure rolls everything back and the attempt stays
        ``in_progress``.
        """
        if answers is None:
            answers = {}
        if not isinstance(answers, Mapping):
            raise ValidationFailed("Answers must be an object keyed by question id")
        if time_spent_seconds is not None and (
            isinstance(time_spent_seconds, bool)
            or not isinstance(time_spent_seconds, int)
            or time_spent_seconds < 0
        ):
            raise ValidationFailed("time_spent_seconds must be a non-negative integer")

        attempt = load_owned_attempt(self.db, attempt_id, user.id, for_update=True)
        if not attempt.is_in_progress:
            raise InvalidState("This attempt is no longer active.")

        quiz = self.quizzes.get_quiz_with_questions(attempt.quiz_id)
        incoming = {str(key): value for key, value in answers.items()}

        try:
            answers_map: Dict[str, Any] = {}
            graded: List[Tuple[Any, NormalizedAnswer]] = []
            for question in quiz.questions:
                key = str(question.id)
                raw_value = incoming.get(key)
                answers_map[key] = raw_value
                graded.append((question, normalize_answer(question, raw_value)))

            summary = aggregate_scores(
                graded,
                negative_marking=bool(quiz.negative_marking),
                negative_mark_value=quiz.negative_mark_value,
            )

            self.db.query(AttemptAnswer).filter(
                AttemptAnswer.quiz_attempt_id == attempt.id
            ).delete(synchronize_session=False)

            for _, answer in graded:
                self.db.add(
                    AttemptAnswer(
                        quiz_attempt_id=attempt.id,
                        question_id=answer.question_id,
                        selected_option_id=answer.selected_option_id,
                        answer_text=answer.answer_text,
                        is_correct=answer.is_correct,
                        time_spent_seconds=0,
                    )
                )
            self.db.flush()

            now = utcnow()
            time_spent = self._resolve_time_spent(attempt, time_spent_seconds, now)

            projection = build_progress_snapshot(
                total_questions=attempt.total_questions,
                answers=answers_map,
                current_question_index=attempt.total_questions,
                time_spent_seconds=time_spent,
                remaining_time_seconds=attempt.remaining_time_seconds,
                now=now,
                completed_count=summary.graded,
            )
            apply_projection(attempt, projection)

            attempt.status = ATTEMPT_COMPLETED
            attempt.completed_at = now
            attempt.score = summary.final_score
            attempt.earned_points = summary.earned_points
            attempt.penalty_points = summary.penalty_points
            attempt.correct_answers = summary.correct
            attempt.incorrect_answers = summary.incorrect

            self.db.commit()
        except QuizAttemptError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to submit quiz attempt {attempt_id} for user {user.id}: {e}",
                exc_info=True,
            )
            raise InternalError("Failed to submit quiz") from e

        self.db.refresh(attempt)
        self.db.expire(attempt, ["answers"])
        logger.info(
            f"Attempt {attempt.id} completed: score={summary.final_score} "
            f"correct={summary.correct} incorrect={summary.incorrect} pending={summary.pending}"
        )
        return SubmissionResult(attempt, quiz, summary, answers_map)

    # ==================== Queries ====================

    def get_attempt(self, user: User, attempt_id: int) -> Tuple[QuizAttempt, Quiz, bool]:
        """Attempt, its quiz, and whether answer keys may be revealed."""
        attempt = load_owned_attempt(self.db, attempt_id, user.id)
        quiz = self.quizzes.get_quiz_with_questions(attempt.quiz_id)
        include_correctness = attempt.is_completed or self.access.can_bypass_availability(
            user, quiz
        )
        return attempt, quiz, include_correctness

    @db_exception("Failed to fetch attempts")
    def list_attempts(
        self,
        user_id: int,
        quiz_id: Optional[int] = None,
        status: Optional[str] = None,
        page: int = 1,
        size: Optional[int] = None,
    ) -> Tuple[List[QuizAttempt], dict]:
        """Get a user's attempts, newest first, optionally filtered by quiz and status"""
        if status is not None and status not in ATTEMPT_STATUSES:
            raise ValidationFailed(f"Unknown attempt status: {status}")

        size = size or settings.default_page_size
        query = self.db.query(QuizAttempt).filter(QuizAttempt.user_id == user_id)

        if quiz_id:
            query = query.filter(QuizAttempt.quiz_id == quiz_id)
        if status:
            query = query.filter(QuizAttempt.status == status)

        # Get total count
        total = query.count()

        # Apply pagination
        offset = (page - 1) * size
        attempts = (
            query.options(selectinload(QuizAttempt.quiz).selectinload(Quiz.questions))
            .order_by(QuizAttempt.created_at.desc(), QuizAttempt.id.desc())
            .offset(offset)
            .limit(size)
            .all()
        )

        # Pagination metadata
        total_pages = math.ceil(total / size) if size > 0 else 0
        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": total_pages,
        }

        return attempts, pagination

    @db_exception("Failed to fetch statistics")
    def get_statistics(self, user_id: int, quiz_id: Optional[int] = None) -> dict:
        """Aggregate figures over a user's attempts (scores over completed ones only)"""
        base_query = self.db.query(QuizAttempt).filter(QuizAttempt.user_id == user_id)
        if quiz_id:
            base_query = base_query.filter(QuizAttempt.quiz_id == quiz_id)

        total_attempts = base_query.count()
        completed_query = base_query.filter(QuizAttempt.status == ATTEMPT_COMPLETED)

        stats = completed_query.with_entities(
            func.count(QuizAttempt.id).label("completed_attempts"),
            func.avg(QuizAttempt.score).label("average_score"),
            func.max(QuizAttempt.score).label("best_score"),
            func.sum(QuizAttempt.time_spent_seconds).label("total_time_spent"),
        ).first()

        completed_attempts = stats.completed_attempts or 0
        recent_attempts = (
            completed_query.options(
                selectinload(QuizAttempt.quiz).selectinload(Quiz.questions)
            )
            .order_by(QuizAttempt.completed_at.desc(), QuizAttempt.id.desc())
            .limit(settings.recent_attempts_limit)
            .all()
        )

        return {
            "quiz_id": quiz_id,
            "total_attempts": total_attempts,
            "completed_attempts": completed_attempts,
            "completion_rate": (
                round(completed_attempts / total_attempts * 100, 2)
                if total_attempts > 0
                else 0
            ),
            "average_score": round(float(stats.average_score or 0), 2),
            "best_score": round(float(stats.best_score or 0), 2),
            "total_time_spent": int(stats.total_time_spent or 0),
            "recent_attempts": [attempt_summary(attempt) for attempt in recent_attempts],
        }

    # ==================== Internals ====================

    def _find_active_attempt(self, user_id: int, quiz_id: int) -> Optional[QuizAttempt]:
        return (
            self.db.query(QuizAttempt)
            .filter(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.status == ATTEMPT_IN_PROGRESS,
            )
            .first()
        )

    def _count_completed_attempts(self, user_id: int, quiz_id: int) -> int:
        return (
            self.db.query(QuizAttempt)
            .filter(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.status == ATTEMPT_COMPLETED,
            )
            .count()
        )

    def _enforce_attempt_quota(self, user_id: int, quiz: Quiz, force_new: bool) -> None:
        completed_count = self._count_completed_attempts(user_id, quiz.id)

        if not quiz.allow_multiple_attempts and not force_new and completed_count > 0:
            logger.warning(f"User {user_id} already completed single-attempt quiz {quiz.id}")
            raise QuotaExceeded("You have already completed this quiz.")

        if quiz.max_attempts is not None and completed_count >= quiz.max_attempts:
            logger.warning(
                f"User {user_id} reached max attempts ({quiz.max_attempts}) on quiz {quiz.id}"
            )
            raise QuotaExceeded(
                f"You have reached the maximum number of attempts ({quiz.max_attempts}) "
                "for this quiz."
            )

    def _initialize_attempt(self, user_id: int, quiz: Quiz) -> QuizAttempt:
        now = utcnow()
        total_questions = len(quiz.questions)
        projection = build_progress_snapshot(
            total_questions=total_questions,
            answers={},
            current_question_index=0,
            time_spent_seconds=0,
            remaining_time_seconds=quiz.timer_seconds,
            now=now,
        )

        attempt = QuizAttempt(
            user_id=user_id,
            quiz_id=quiz.id,
            status=ATTEMPT_IN_PROGRESS,
            total_questions=total_questions,
            score=None,
            earned_points=None,
            penalty_points=None,
            correct_answers=0,
            incorrect_answers=0,
            started_at=now,
            completed_at=None,
        )
        apply_projection(attempt, projection)
        return attempt

    @staticmethod
    def _resolve_time_spent(
        attempt: QuizAttempt, supplied: Optional[int], now: datetime
    ) -> int:
        """Caller's value, else last saved value, else wall time since start."""
        if supplied is not None:
            return int(supplied)

        time_spent = attempt.time_spent_seconds or 0
        if time_spent == 0 and attempt.started_at:
            elapsed = (now - as_utc(attempt.started_at)).total_seconds()
            time_spent = max(0, int(elapsed))
        return time_spent
