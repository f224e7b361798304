# app/services/attempt_payloads.py
"""
Response payloads shared by the attempt routes and statistics.

Answer keys (``is_correct`` on options, ``correct_boolean``) are only emitted
when ``include_correctness`` is set; in-progress learners never receive them.
"""

from typing import Any, Dict, Optional

from app.models.quiz import QUESTION_TYPE_SHORT_DESC, Question, Quiz
from app.models.quiz_attempt import QuizAttempt
from app.services.answer_normalizer import answer_provided
from app.services.quiz_progress import completion_percentage


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def question_points(question: Question) -> int:
    return int(question.points if question.points is not None else 1)


def is_manually_graded(question: Question) -> bool:
    return question.type == QUESTION_TYPE_SHORT_DESC or bool(
        question.requires_manual_grading
    )


def max_score(quiz: Optional[Quiz]) -> int:
    if quiz is None:
        return 0
    return sum(question_points(question) for question in quiz.questions)


def progress_payload(attempt: QuizAttempt) -> Dict[str, Any]:
    progress = attempt.progress or {}
    answers = {str(key): value for key, value in (progress.get("answers") or {}).items()}
    answered = progress.get("answeredQuestions")
    if answered is None:
        answered = sum(1 for value in answers.values() if answer_provided(value))

    percentage = progress.get("completionPercentage")
    if percentage is None:
        percentage = completion_percentage(
            (attempt.correct_answers or 0) + (attempt.incorrect_answers or 0),
            attempt.total_questions,
        )

    last_activity = progress.get("lastActivityAt")
    if last_activity is None and attempt.updated_at is not None:
        last_activity = attempt.updated_at.isoformat()

    return {
        "currentQuestionIndex": progress.get(
            "currentQuestionIndex", attempt.current_question_index
        ),
        "totalQuestions": progress.get("totalQuestions", attempt.total_questions),
        "answeredQuestions": answered,
        "answers": answers,
        "timeSpent": progress.get("timeSpent", attempt.time_spent_seconds),
        "lastActivityAt": last_activity,
        "completionPercentage": percentage,
    }


def attempt_payload(attempt: QuizAttempt, quiz: Optional[Quiz] = None) -> Dict[str, Any]:
    """Full attempt snapshot"""
    data = {
        "id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "user_id": attempt.user_id,
        "status": attempt.status,
        "current_question_index": attempt.current_question_index,
        "total_questions": attempt.total_questions,
        "score": _as_float(attempt.score),
        "earned_points": _as_float(attempt.earned_points),
        "penalty_points": _as_float(attempt.penalty_points),
        "correct_answers": attempt.correct_answers or 0,
        "incorrect_answers": attempt.incorrect_answers or 0,
        "time_spent_seconds": attempt.time_spent_seconds or 0,
        "remaining_time_seconds": attempt.remaining_time_seconds,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "created_at": attempt.created_at,
        "updated_at": attempt.updated_at,
        "progress": progress_payload(attempt),
    }

    if quiz is not None:
        data["quiz"] = {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "difficulty": quiz.difficulty,
            "timer_seconds": quiz.timer_seconds,
        }

    return data


def question_payload(question: Question, include_correctness: bool) -> Dict[str, Any]:
    options = []
    for index, option in enumerate(
        sorted(question.options, key=lambda option: option.order_index)
    ):
        payload = {
            "id": option.id,
            "text": option.text,
            "order_index": option.order_index if option.order_index is not None else index,
        }
        if include_correctness:
            payload["is_correct"] = bool(option.is_correct)
        options.append(payload)

    return {
        "id": question.id,
        "type": question.type,
        "order_index": question.order_index,
        "text": question.text,
        "prompt": question.prompt,
        "explanation": question.explanation if include_correctness else None,
        "multiple_correct": bool(question.multiple_correct),
        "requires_manual_grading": bool(question.requires_manual_grading),
        "correct_boolean": (
            bool(question.correct_boolean)
            if include_correctness and question.correct_boolean is not None
            else None
        ),
        "points": question_points(question),
        "options": options,
    }


def quiz_payload(quiz: Quiz, include_correctness: bool = False) -> Dict[str, Any]:
    """Quiz with the questions needed to render the next screen"""
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "difficulty": quiz.difficulty,
        "timer_seconds": quiz.timer_seconds,
        "status": quiz.status,
        "negative_marking": bool(quiz.negative_marking),
        "negative_mark_value": _as_float(quiz.negative_mark_value),
        "allow_multiple_attempts": bool(quiz.allow_multiple_attempts),
        "max_attempts": quiz.max_attempts,
        "questions": [
            question_payload(question, include_correctness) for question in quiz.questions
        ],
    }


def results_payload(
    attempt: QuizAttempt, quiz: Quiz, pending: Optional[int] = None
) -> Dict[str, Any]:
    if pending is None:
        pending = sum(1 for question in quiz.questions if is_manually_graded(question))

    return {
        "score": _as_float(attempt.score),
        "max_score": max_score(quiz),
        "correct_answers": attempt.correct_answers or 0,
        "incorrect_answers": attempt.incorrect_answers or 0,
        "pending_answers": pending,
        "completion_percentage": progress_payload(attempt)["completionPercentage"],
        "time_spent": attempt.time_spent_seconds or 0,
    }


def attempt_summary(attempt: QuizAttempt) -> Dict[str, Any]:
    """Compact row for attempt lists and statistics"""
    quiz = attempt.quiz
    return {
        "id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "quiz_title": quiz.title if quiz else None,
        "status": attempt.status,
        "score": _as_float(attempt.score),
        "max_score": max_score(quiz),
        "completion_percentage": progress_payload(attempt)["completionPercentage"],
        "time_spent_seconds": attempt.time_spent_seconds or 0,
        "correct_answers": attempt.correct_answers or 0,
        "incorrect_answers": attempt.incorrect_answers or 0,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "difficulty": quiz.difficulty if quiz else None,
    }
