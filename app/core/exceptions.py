"""
Error taxonomy for the quiz attempt engine.

Services raise these; ``main.py`` renders them as ``{"error", "type"}`` JSON
with the status code carried by the exception.
"""

from typing import Optional


class QuizAttemptError(Exception):
    status_code: int = 400
    error_type: str = "quiz_attempt_error"
    default_message: str = "Quiz attempt request failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class Forbidden(QuizAttemptError):
    status_code = 403
    error_type = "forbidden"
    default_message = "You are not allowed to access this quiz"


class NotFound(QuizAttemptError):
    status_code = 404
    error_type = "not_found"
    default_message = "Resource not found"


class InvalidState(QuizAttemptError):
    status_code = 409
    error_type = "invalid_state"
    default_message = "This attempt is no longer active."


class QuotaExceeded(QuizAttemptError):
    status_code = 422
    error_type = "quota_exceeded"
    default_message = "You have reached the maximum number of attempts for this quiz."


class ValidationFailed(QuizAttemptError):
    status_code = 422
    error_type = "validation_failed"
    default_message = "Validation failed"


class InternalError(QuizAttemptError):
    status_code = 500
    error_type = "internal"
    default_message = "Internal error"
