# app/services/quiz_progress.py
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import InternalError, InvalidState, NotFound, ValidationFailed
from app.models.quiz_attempt import QuizAttempt
from app.schemas.quiz_attempt import ProgressUpdate
from app.services.answer_normalizer import answer_provided

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def merge_answers(existing: Mapping, incoming: Mapping) -> Dict[str, Any]:
    """
    Overwrite ``existing`` key by key with ``incoming``; keys absent from
    ``incoming`` are kept. Keys are normalized to strings.
    """
    merged = {str(key): value for key, value in (existing or {}).items()}
    for key, value in (incoming or {}).items():
        merged[str(key)] = value
    return merged


def completion_percentage(done: int, total_questions: int) -> float:
    if not total_questions:
        return 0
    return round(done / total_questions * 100, 2)


@dataclass(frozen=True)
class ProgressProjection:
    """The ``progress`` document plus the attempt columns derived from it."""

    progress: Dict[str, Any]
    columns: Dict[str, Any] = field(default_factory=dict)


def build_progress_snapshot(
    *,
    total_questions: int,
    answers: Mapping,
    current_question_index: int,
    time_spent_seconds: int,
    remaining_time_seconds: Optional[int],
    now: datetime,
    completed_count: Optional[int] = None,
) -> ProgressProjection:
    """
    Single source for the progress snapshot and its denormalized columns.

    ``completionPercentage`` is derived from the answered count unless
    ``completed_count`` (graded questions at submission) is given.
    """
    answers = {str(key): value for key, value in (answers or {}).items()}
    answered = sum(1 for value in answers.values() if answer_provided(value))
    done = answered if completed_count is None else completed_count

    progress = {
        "currentQuestionIndex": current_question_index,
        "totalQuestions": total_questions,
        "answeredQuestions": answered,
        "answers": answers,
        "timeSpent": time_spent_seconds,
        "lastActivityAt": now.isoformat(),
        "completionPercentage": completion_percentage(done, total_questions),
    }
    columns = {
        "current_question_index": current_question_index,
        "time_spent_seconds": time_spent_seconds,
        "remaining_time_seconds": remaining_time_seconds,
        "progress": progress,
    }
    return ProgressProjection(progress=progress, columns=columns)


def apply_projection(attempt: QuizAttempt, projection: ProgressProjection) -> None:
    for column, value in projection.columns.items():
        setattr(attempt, column, value)


def load_owned_attempt(
    db: Session, attempt_id: int, user_id: int, for_update: bool = False
) -> QuizAttempt:
    """
    Fetch an attempt owned by ``user_id``. Attempts belonging to someone else
    are reported as missing so their existence is not leaked.
    """
    query = db.query(QuizAttempt).filter(
        QuizAttempt.id == attempt_id, QuizAttempt.user_id == user_id
    )
    if for_update:
        query = query.with_for_update()
    attempt = query.first()

    if not attempt:
        raise NotFound("Quiz attempt not found")
    return attempt


class ProgressTracker:
    def __init__(self, db: Session):
        self.db = db

    def save(
        self,
        user_id: int,
        attempt_id: int,
        update: Union[ProgressUpdate, Mapping[str, Any]],
    ) -> QuizAttempt:
        """
        Merge a partial progress update into the attempt's snapshot.

        Incoming answers overwrite stored answers key by key; every other field
        falls back to its stored value when omitted or null. Re-sending the
        same update leaves the snapshot unchanged apart from lastActivityAt.
        """
        if not isinstance(update, ProgressUpdate):
            try:
                update = ProgressUpdate.model_validate(update or {})
            except ValidationError as e:
                raise ValidationFailed(f"Invalid progress payload: {e.errors()}")

        attempt = load_owned_attempt(self.db, attempt_id, user_id, for_update=True)
        if not attempt.is_in_progress:
            raise InvalidState("This attempt is no longer active.")

        stored = attempt.progress or {}
        merged = merge_answers(stored.get("answers") or {}, update.answers or {})

        projection = build_progress_snapshot(
            total_questions=attempt.total_questions or 0,
            answers=merged,
            current_question_index=_pick(
                update.current_question_index, attempt.current_question_index
            ),
            time_spent_seconds=_pick(
                update.time_spent_seconds, attempt.time_spent_seconds
            ),
            remaining_time_seconds=_pick(
                update.remaining_time_seconds, attempt.remaining_time_seconds
            ),
            now=utcnow(),
        )
        apply_projection(attempt, projection)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to save progress for attempt {attempt_id}: {type(e).__name__}",
                exc_info=True,
            )
            raise InternalError("Failed to update progress") from e

        self.db.refresh(attempt)
        logger.debug(
            f"Progress saved for attempt {attempt.id}: "
            f"{projection.progress['answeredQuestions']}/{attempt.total_questions} answered"
        )
        return attempt


def _pick(incoming, previous):
    return incoming if incoming is not None else previous
