# app/schemas/quiz_attempt.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# ==================== Request Schemas ====================


class StartAttemptRequest(BaseModel):
    """Begin (or re-take) a quiz"""

    force_new: bool = Field(
        False, description="Abandon the active attempt and start a fresh one"
    )


class LegacyStartAttemptRequest(StartAttemptRequest):
    """Begin a quiz identified in the body"""

    quiz_id: int = Field(..., ge=1, description="Quiz to attempt")


class ProgressUpdate(BaseModel):
    """Partial progress save. Omitted fields keep their stored value."""

    model_config = ConfigDict(populate_by_name=True)

    current_question_index: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("current_question_index", "currentQuestionIndex"),
    )
    time_spent_seconds: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("time_spent_seconds", "timeSpent"),
    )
    remaining_time_seconds: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("remaining_time_seconds", "remainingTimeSeconds"),
    )
    answers: Optional[Dict[str, Any]] = Field(
        None, description="Sparse map of question id -> raw answer"
    )


class SubmitAttemptRequest(BaseModel):
    """Final answers for grading"""

    model_config = ConfigDict(populate_by_name=True)

    answers: Dict[str, Any] = Field(
        default_factory=dict, description="Map of question id -> raw answer"
    )
    time_spent_seconds: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("time_spent_seconds", "timeSpent"),
        description="Elapsed time in seconds; derived from the attempt when omitted",
    )


# ==================== Response Schemas ====================


class ProgressSnapshot(BaseModel):
    currentQuestionIndex: int = 0
    totalQuestions: int = 0
    answeredQuestions: int = 0
    answers: Dict[str, Any] = Field(default_factory=dict)
    timeSpent: int = 0
    lastActivityAt: Optional[str] = None
    completionPercentage: float = 0


class QuizSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    difficulty: Optional[str] = None
    timer_seconds: Optional[int] = None


class QuizAttemptResponse(BaseModel):
    """Full attempt snapshot"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    quiz_id: int
    user_id: int
    status: str
    current_question_index: int
    total_questions: int
    score: Optional[float] = None
    earned_points: Optional[float] = None
    penalty_points: Optional[float] = None
    correct_answers: int
    incorrect_answers: int
    time_spent_seconds: int
    remaining_time_seconds: Optional[int] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    progress: ProgressSnapshot
    quiz: Optional[QuizSummary] = None


class QuestionOptionPayload(BaseModel):
    id: int
    text: Optional[str] = None
    order_index: int
    # Only present once the attempt is completed or for owners/elevated roles
    is_correct: Optional[bool] = None


class QuestionPayload(BaseModel):
    id: int
    type: str
    order_index: int
    text: Optional[str] = None
    prompt: Optional[str] = None
    explanation: Optional[str] = None
    multiple_correct: bool = False
    requires_manual_grading: bool = False
    correct_boolean: Optional[bool] = None
    points: int = 1
    options: List[QuestionOptionPayload] = Field(default_factory=list)


class QuizPayload(QuizSummary):
    negative_marking: bool = False
    negative_mark_value: Optional[float] = None
    allow_multiple_attempts: bool = False
    max_attempts: Optional[int] = None
    status: str
    questions: List[QuestionPayload] = Field(default_factory=list)


class AttemptResults(BaseModel):
    score: Optional[float] = None
    max_score: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    pending_answers: int = 0
    completion_percentage: float = 0
    time_spent: int = 0


class AttemptEnvelope(BaseModel):
    """Response for every attempt-returning operation"""

    status: Literal["created", "resume", "progress_saved", "completed", "abandoned", "ok"]
    message: Optional[str] = None
    attempt: QuizAttemptResponse
    quiz: Optional[QuizPayload] = None
    results: Optional[AttemptResults] = None
    answers: Optional[Dict[str, Any]] = None


class QuizAttemptSummary(BaseModel):
    id: int
    quiz_id: int
    quiz_title: Optional[str] = None
    status: str
    score: Optional[float] = None
    max_score: int = 0
    completion_percentage: float = 0
    time_spent_seconds: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    difficulty: Optional[str] = None


class QuizAttemptListResponse(BaseModel):
    attempts: List[QuizAttemptSummary]
    total: int
    page: int
    size: int
    total_pages: int


class QuizAttemptStatistics(BaseModel):
    """Statistics for a user's quiz attempts"""

    quiz_id: Optional[int] = None
    total_attempts: int = 0
    completed_attempts: int = 0
    completion_rate: float = 0
    average_score: float = 0
    best_score: float = 0
    total_time_spent: int = 0
    recent_attempts: List[QuizAttemptSummary] = Field(default_factory=list)
