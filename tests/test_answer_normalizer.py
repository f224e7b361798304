"""
Pytest tests for answer normalization
Covers every question type, including malformed and out-of-range input
"""

import json
from types import SimpleNamespace

import pytest

from app.services.answer_normalizer import answer_provided, normalize_answer


def make_option(option_id, order_index, is_correct):
    return SimpleNamespace(id=option_id, order_index=order_index, is_correct=is_correct)


def make_question(question_type, question_id=1, options=(), **fields):
    defaults = {
        "multiple_correct": False,
        "correct_boolean": None,
        "requires_manual_grading": False,
        "points": 1,
    }
    defaults.update(fields)
    return SimpleNamespace(
        id=question_id, type=question_type, options=list(options), **defaults
    )


class TestMultiSelect:
    """Set-equality grading for multi-select mcq"""

    def setup_method(self):
        """Correct options sit at positions 0 and 2"""
        self.question = make_question(
            "mcq",
            multiple_correct=True,
            options=[
                make_option(10, 0, True),
                make_option(11, 1, False),
                make_option(12, 2, True),
            ],
        )

    def test_exact_set_in_any_order_is_correct(self):
        result = normalize_answer(self.question, [2, 0])

        assert result.is_correct is True
        assert result.is_pending is False
        assert json.loads(result.answer_text) == [12, 10]

    @pytest.mark.parametrize("selection", [[0], [0, 1, 2]])
    def test_subset_or_superset_is_incorrect(self, selection):
        result = normalize_answer(self.question, selection)

        assert result.is_correct is False
        assert result.is_answered is True

    def test_empty_selection_is_incorrect_not_pending(self):
        result = normalize_answer(self.question, [])

        assert result.is_correct is False
        assert result.is_pending is False
        assert result.answer_text is None

    def test_duplicates_and_negative_indices_are_ignored(self):
        result = normalize_answer(self.question, [0, "2", 0, -1])

        assert result.is_correct is True
        assert json.loads(result.answer_text) == [10, 12]

    def test_out_of_range_index_does_not_resolve(self):
        result = normalize_answer(self.question, [0, 2, 7])

        # The selection resolves to exactly the correct ids
        assert result.is_correct is True
        assert json.loads(result.answer_text) == [10, 12]

    def test_options_are_resolved_in_order_index_order(self):
        shuffled = make_question(
            "mcq",
            multiple_correct=True,
            options=[make_option(21, 1, True), make_option(20, 0, False)],
        )

        assert normalize_answer(shuffled, [1]).is_correct is True
        assert normalize_answer(shuffled, [0]).is_correct is False


class TestSingleSelect:
    """Index resolution for single-select mcq"""

    def setup_method(self):
        self.question = make_question(
            "mcq",
            options=[make_option(30, 0, False), make_option(31, 1, True)],
        )

    def test_correct_index_stores_option_id(self):
        result = normalize_answer(self.question, 1)

        assert result.is_correct is True
        assert result.selected_option_id == 31
        assert result.answer_text is None

    def test_wrong_index(self):
        result = normalize_answer(self.question, 0)

        assert result.is_correct is False
        assert result.selected_option_id == 30
        assert result.is_answered is True

    def test_numeric_string_and_singleton_list_are_accepted(self):
        assert normalize_answer(self.question, "1").is_correct is True
        assert normalize_answer(self.question, [1]).is_correct is True

    @pytest.mark.parametrize("raw_value", [5, -1])
    def test_out_of_range_index_is_incorrect(self, raw_value):
        result = normalize_answer(self.question, raw_value)

        assert result.is_correct is False
        assert result.selected_option_id is None
        assert result.answer_text == json.dumps([raw_value])

    def test_null_answer_is_incorrect(self):
        result = normalize_answer(self.question, None)

        assert result.is_correct is False
        assert result.is_pending is False
        assert result.is_answered is False


class TestTrueFalse:
    """Boolean grading"""

    def setup_method(self):
        self.question = make_question("true_false", correct_boolean=True)

    @pytest.mark.parametrize("raw_value", [True, "true", "TRUE", 1, "1", "yes"])
    def test_truthy_values_match(self, raw_value):
        result = normalize_answer(self.question, raw_value)

        assert result.is_correct is True
        assert result.answer_text == "true"

    @pytest.mark.parametrize("raw_value", [False, "false", 0, "no"])
    def test_falsy_values_do_not_match(self, raw_value):
        result = normalize_answer(self.question, raw_value)

        assert result.is_correct is False
        assert result.answer_text == "false"

    @pytest.mark.parametrize("raw_value", [None, "", "maybe"])
    def test_missing_value_is_incorrect_not_pending(self, raw_value):
        result = normalize_answer(self.question, raw_value)

        assert result.is_correct is False
        assert result.is_pending is False
        assert result.answer_text is None


class TestManualGrading:
    """Free-text and flagged questions stay pending"""

    def test_short_desc_is_pending(self):
        question = make_question("short_desc")
        result = normalize_answer(question, "Photosynthesis converts light")

        assert result.is_pending is True
        assert result.is_correct is False
        assert result.answer_text == "Photosynthesis converts light"

    def test_short_desc_without_answer_is_still_pending(self):
        result = normalize_answer(make_question("short_desc"), None)

        assert result.is_pending is True
        assert result.answer_text is None

    def test_flagged_mcq_is_pending(self):
        question = make_question(
            "mcq",
            requires_manual_grading=True,
            options=[make_option(40, 0, True)],
        )

        assert normalize_answer(question, 0).is_pending is True

    def test_unknown_type_is_incorrect(self):
        result = normalize_answer(make_question("matching"), {"a": 1})

        assert result.is_correct is False
        assert result.is_pending is False
        assert json.loads(result.answer_text) == {"a": 1}


class TestAnswerProvided:
    @pytest.mark.parametrize("value", [0, False, "x", [0], [None, 1]])
    def test_provided(self, value):
        assert answer_provided(value) is True

    @pytest.mark.parametrize("value", [None, "", [], [None, ""]])
    def test_not_provided(self, value):
        assert answer_provided(value) is False
