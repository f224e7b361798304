# app/services/answer_normalizer.py
"""
Maps a raw, loosely-typed answer value onto a gradeable form.

``normalize_answer`` is pure: it reads a question definition (with options
already sorted by ``order_index``) and the value the client sent, and returns
what should be persisted on ``AttemptAnswer`` together with the grading
verdict. Option "indices" are positions in that sorted list, never option ids.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from app.models.quiz import (
    QUESTION_TYPE_MCQ,
    QUESTION_TYPE_SHORT_DESC,
    QUESTION_TYPE_TRUE_FALSE,
)

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


@dataclass(frozen=True)
class NormalizedAnswer:
    """Graded answer for one question."""

    question_id: int
    selected_option_id: Optional[int]
    answer_text: Optional[str]
    is_correct: bool
    is_pending: bool
    # A selection was actually made (drives negative marking)
    is_answered: bool


def answer_provided(value: Any) -> bool:
    """
    True when a progress/answer value counts as answered: a non-null,
    non-empty scalar, or a list with at least one non-null, non-empty item.
    """
    if isinstance(value, (list, tuple)):
        return any(item is not None and item != "" for item in value)
    return value is not None and value != ""


def _coerce_index(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _coerce_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def _option_at(options: Sequence, index: Optional[int]):
    # Negative indices are out of range, not "from the end"
    if index is None or index < 0 or index >= len(options):
        return None
    return options[index]


def _normalize_manual(question, raw_value: Any) -> NormalizedAnswer:
    return NormalizedAnswer(
        question_id=question.id,
        selected_option_id=None,
        answer_text=_as_text(raw_value),
        is_correct=False,
        is_pending=True,
        is_answered=answer_provided(raw_value),
    )


def _normalize_true_false(question, raw_value: Any) -> NormalizedAnswer:
    selected = _coerce_bool(raw_value)
    if selected is None:
        return NormalizedAnswer(
            question_id=question.id,
            selected_option_id=None,
            answer_text=None,
            is_correct=False,
            is_pending=False,
            is_answered=False,
        )

    return NormalizedAnswer(
        question_id=question.id,
        selected_option_id=None,
        answer_text="true" if selected else "false",
        is_correct=selected == bool(question.correct_boolean),
        is_pending=False,
        is_answered=True,
    )


def _normalize_single_choice(question, options: Sequence, raw_value: Any) -> NormalizedAnswer:
    # A one-element list sent to a single-select question is unwrapped
    if isinstance(raw_value, (list, tuple)) and len(raw_value) == 1:
        raw_value = raw_value[0]

    index = _coerce_index(raw_value)
    option = _option_at(options, index)

    if option is None:
        return NormalizedAnswer(
            question_id=question.id,
            selected_option_id=None,
            answer_text=json.dumps([index]),
            is_correct=False,
            is_pending=False,
            is_answered=False,
        )

    return NormalizedAnswer(
        question_id=question.id,
        selected_option_id=option.id,
        answer_text=None,
        is_correct=bool(option.is_correct),
        is_pending=False,
        is_answered=True,
    )


def _normalize_multiple_choice(question, options: Sequence, raw_value: Any) -> NormalizedAnswer:
    if raw_value is None:
        values: List[Any] = []
    elif isinstance(raw_value, (list, tuple)):
        values = list(raw_value)
    else:
        values = [raw_value]

    selected_indexes: List[int] = []
    for value in values:
        index = _coerce_index(value)
        if index is not None and index >= 0 and index not in selected_indexes:
            selected_indexes.append(index)

    selected_option_ids: List[int] = []
    for index in selected_indexes:
        option = _option_at(options, index)
        if option is not None and option.id not in selected_option_ids:
            selected_option_ids.append(option.id)

    correct_option_ids = {option.id for option in options if option.is_correct}
    is_answered = bool(selected_indexes)
    is_correct = is_answered and set(selected_option_ids) == correct_option_ids

    return NormalizedAnswer(
        question_id=question.id,
        selected_option_id=None,
        answer_text=json.dumps(selected_option_ids) if selected_option_ids else None,
        is_correct=is_correct,
        is_pending=False,
        is_answered=is_answered,
    )


def normalize_answer(question, raw_value: Any) -> NormalizedAnswer:
    """
    Grade ``raw_value`` against ``question``.

    - short_desc, or any question flagged for manual grading: always pending,
      never correct.
    - true_false: correct when the boolean matches ``correct_boolean``;
      missing values are incorrect, never pending.
    - mcq single-select: correct when the index resolves to a correct option.
    - mcq multi-select: correct when the resolved option ids are exactly the
      set of correct option ids; an empty selection is incorrect.

    Unknown question types are stored as text and graded incorrect.
    """
    if question.type == QUESTION_TYPE_SHORT_DESC or question.requires_manual_grading:
        return _normalize_manual(question, raw_value)

    if question.type == QUESTION_TYPE_TRUE_FALSE:
        return _normalize_true_false(question, raw_value)

    if question.type == QUESTION_TYPE_MCQ:
        options = sorted(question.options, key=lambda option: option.order_index)
        if question.multiple_correct:
            return _normalize_multiple_choice(question, options, raw_value)
        return _normalize_single_choice(question, options, raw_value)

    logger.warning(
        f"Unsupported question type '{question.type}' for question {question.id}; "
        "grading as incorrect"
    )
    return NormalizedAnswer(
        question_id=question.id,
        selected_option_id=None,
        answer_text=_as_text(raw_value),
        is_correct=False,
        is_pending=False,
        is_answered=False,
    )
