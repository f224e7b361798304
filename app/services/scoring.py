# app/services/scoring.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Tuple

from app.models.quiz import QUESTION_TYPE_MCQ, QUESTION_TYPE_TRUE_FALSE
from app.services.answer_normalizer import NormalizedAnswer

# Only auto-graded types carry negative marking
PENALIZED_TYPES = (QUESTION_TYPE_MCQ, QUESTION_TYPE_TRUE_FALSE)


@dataclass(frozen=True)
class ScoreSummary:
    correct: int
    incorrect: int
    pending: int
    total_points: int
    earned_points: float
    penalty_points: float
    final_score: float

    @property
    def graded(self) -> int:
        return self.correct + self.incorrect + self.pending


def clamp_score(earned_points: float, total_points: float) -> float:
    """Percentage of points earned, bounded to [0, 100] and rounded to 2 places."""
    percentage = (max(earned_points, 0) / max(total_points, 1)) * 100
    return round(max(0.0, min(100.0, percentage)), 2)


def aggregate_scores(
    results: Iterable[Tuple[object, NormalizedAnswer]],
    negative_marking: bool = False,
    negative_mark_value=0,
) -> ScoreSummary:
    """
    Fold per-question results, in quiz order, into attempt totals.

    ``results`` yields ``(question, normalized_answer)`` pairs. Every question
    adds its points to the total (pending ones included). Negative marking is
    charged only for answered mcq/true_false questions graded incorrect
    (skipped questions are incorrect but free), and is reported separately:
    it is not subtracted from ``final_score``.
    """
    penalty_per_wrong = (
        Decimal(str(negative_mark_value or 0)) if negative_marking else Decimal("0")
    )

    correct = incorrect = pending = 0
    total_points = 0
    earned_points = Decimal("0")
    penalty_points = Decimal("0")

    for question, answer in results:
        points = int(question.points if question.points is not None else 1)
        total_points += points

        if answer.is_pending:
            pending += 1
        elif answer.is_correct:
            correct += 1
            earned_points += points
        else:
            incorrect += 1
            if answer.is_answered and question.type in PENALIZED_TYPES:
                penalty_points += penalty_per_wrong

    earned = float(max(earned_points, Decimal("0")))
    penalty = float(max(penalty_points, Decimal("0")))

    return ScoreSummary(
        correct=correct,
        incorrect=incorrect,
        pending=pending,
        total_points=total_points,
        earned_points=round(earned, 2),
        penalty_points=round(penalty, 2),
        final_score=clamp_score(earned, total_points),
    )
