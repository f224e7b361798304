# app/routers/quiz_attempt.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.core.limiter import limiter
from app.models.user import User
from app.schemas.quiz_attempt import (
    AttemptEnvelope,
    LegacyStartAttemptRequest,
    ProgressUpdate,
    QuizAttemptListResponse,
    QuizAttemptStatistics,
    StartAttemptRequest,
    SubmitAttemptRequest,
)
from app.services.attempt_payloads import (
    attempt_payload,
    attempt_summary,
    quiz_payload,
    results_payload,
)
from app.services.quiz_attempt import OUTCOME_CREATED, QuizAttemptService
from app.services.quiz_progress import ProgressTracker


router = APIRouter(
    tags=["Quiz Attempts"],
    responses={404: {"description": "Not found"}},
)


def _admission_response(result, response: Response) -> dict:
    if result.outcome == OUTCOME_CREATED:
        response.status_code = status.HTTP_201_CREATED
        message = None
    else:
        message = "You already have an active attempt for this quiz."

    return {
        "status": result.outcome,
        "message": message,
        "attempt": attempt_payload(result.attempt, result.quiz),
        "quiz": quiz_payload(result.quiz, include_correctness=False),
    }


# ==================== Admission ====================


@router.post("/quizzes/{quiz_id}/attempts", response_model=AttemptEnvelope)
@limiter.limit(settings.quiz_attempt_rate_limit)
def start_quiz_attempt(
    request: Request,
    response: Response,
    quiz_id: int,
    payload: Optional[StartAttemptRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Start a quiz attempt, or resume the one already in progress.
    Pass `force_new` to abandon the active attempt and start over.
    """
    force_new = payload.force_new if payload else False
    service = QuizAttemptService(db)
    result = service.begin(current_user, quiz_id, force_new=force_new)
    return _admission_response(result, response)


@router.post("/quiz-attempts/start", response_model=AttemptEnvelope)
@limiter.limit(settings.quiz_attempt_rate_limit)
def start_quiz_attempt_legacy(
    request: Request,
    response: Response,
    payload: LegacyStartAttemptRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Start a quiz attempt with the quiz id in the request body."""
    service = QuizAttemptService(db)
    result = service.begin(current_user, payload.quiz_id, force_new=payload.force_new)
    return _admission_response(result, response)


@router.post("/quiz-attempts/{attempt_id}/resume", response_model=AttemptEnvelope)
@limiter.limit(settings.quiz_attempt_rate_limit)
def resume_quiz_attempt(
    request: Request,
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Resume an attempt that is still in progress."""
    service = QuizAttemptService(db)
    attempt, quiz = service.resume(current_user, attempt_id)
    return {
        "status": "resume",
        "attempt": attempt_payload(attempt, quiz),
        "quiz": quiz_payload(quiz, include_correctness=False),
    }


# ==================== Progress & Submission ====================


@router.put("/quiz-attempts/{attempt_id}/progress", response_model=AttemptEnvelope)
@limiter.limit(settings.quiz_attempt_rate_limit)
def save_quiz_progress(
    request: Request,
    attempt_id: int,
    update: ProgressUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Save partial progress (position, elapsed time, answers).
    Answers are merged key by key into what is already stored.
    """
    tracker = ProgressTracker(db)
    attempt = tracker.save(current_user.id, attempt_id, update)
    return {
        "status": "progress_saved",
        "attempt": attempt_payload(attempt, attempt.quiz),
    }


@router.post("/quiz-attempts/{attempt_id}/submit", response_model=AttemptEnvelope)
@limiter.limit(settings.quiz_attempt_rate_limit)
def submit_quiz_attempt(
    request: Request,
    attempt_id: int,
    submission: SubmitAttemptRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Submit and grade an attempt.
    Returns the completed attempt, its results and the quiz with answer keys.
    """
    service = QuizAttemptService(db)
    result = service.submit(
        current_user,
        attempt_id,
        answers=submission.answers,
        time_spent_seconds=submission.time_spent_seconds,
    )
    return {
        "status": "completed",
        "attempt": attempt_payload(result.attempt, result.quiz),
        "results": results_payload(
            result.attempt, result.quiz, pending=result.summary.pending
        ),
        "quiz": quiz_payload(result.quiz, include_correctness=True),
        "answers": result.answers,
    }


@router.post("/quiz-attempts/{attempt_id}/abandon", response_model=AttemptEnvelope)
@limiter.limit(settings.quiz_attempt_rate_limit)
def abandon_quiz_attempt(
    request: Request,
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Abandon an in-progress attempt. Calling it again is a no-op."""
    service = QuizAttemptService(db)
    attempt = service.abandon(current_user, attempt_id)
    return {
        "status": "abandoned",
        "attempt": attempt_payload(attempt, attempt.quiz),
    }


# ==================== Queries ====================


@router.get("/quiz-attempts/{attempt_id}", response_model=AttemptEnvelope)
def get_quiz_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get a single attempt with its quiz.
    Answer keys are included once the attempt is completed.
    """
    service = QuizAttemptService(db)
    attempt, quiz, include_correctness = service.get_attempt(current_user, attempt_id)
    attempt_data = attempt_payload(attempt, quiz)
    return {
        "status": "ok",
        "attempt": attempt_data,
        "quiz": quiz_payload(quiz, include_correctness=include_correctness),
        "results": results_payload(attempt, quiz),
        "answers": attempt_data["progress"]["answers"],
    }


@router.get("/user/quiz-attempts", response_model=QuizAttemptListResponse)
def list_quiz_attempts(
    quiz_id: Optional[int] = Query(None, ge=1),
    attempt_status: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get the current user's attempts, newest first.
    Filter by quiz and by status (in_progress, completed, abandoned).
    """
    service = QuizAttemptService(db)
    attempts, pagination = service.list_attempts(
        current_user.id, quiz_id=quiz_id, status=attempt_status, page=page, size=size
    )
    return {
        "attempts": [attempt_summary(attempt) for attempt in attempts],
        **pagination,
    }


@router.get("/user/attempt-statistics", response_model=QuizAttemptStatistics)
def get_attempt_statistics(
    quiz_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get statistics over the current user's attempts.
    Includes completion rate, average and best score, and recent attempts.
    """
    service = QuizAttemptService(db)
    return service.get_statistics(current_user.id, quiz_id=quiz_id)
