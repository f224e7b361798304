"""
Pytest tests for QuizAttemptService
Admission, quotas, submission atomicity and queries
"""

from datetime import timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    Forbidden,
    InternalError,
    InvalidState,
    NotFound,
    QuotaExceeded,
    ValidationFailed,
)
from app.models.attempt_answer import AttemptAnswer
from app.models.quiz import QUIZ_STATUS_DRAFT
from app.models.quiz_attempt import (
    ATTEMPT_ABANDONED,
    ATTEMPT_COMPLETED,
    ATTEMPT_IN_PROGRESS,
    QuizAttempt,
)
from app.services.quiz_attempt import OUTCOME_CREATED, OUTCOME_RESUME, QuizAttemptService
from app.services.quiz_progress import ProgressTracker, utcnow

MIXED_QUIZ = [
    ("mcq", [False, True], False, 2),
    ("true_false", True, 1),
]


@pytest.fixture
def service(db):
    return QuizAttemptService(db)


@pytest.fixture
def quiz(make_quiz, enroll, student):
    quiz = make_quiz(MIXED_QUIZ, negative_marking=True, negative_mark_value=0.5)
    enroll(student, quiz)
    return quiz


def question_ids(quiz):
    return [str(q.id) for q in quiz.questions]


class TestAdmission:
    """begin / resume"""

    def test_begin_creates_attempt(self, service, student, quiz):
        result = service.begin(student, quiz.id)

        assert result.outcome == OUTCOME_CREATED
        attempt = result.attempt
        assert attempt.status == ATTEMPT_IN_PROGRESS
        assert attempt.total_questions == 2
        assert attempt.current_question_index == 0
        assert attempt.score is None
        assert attempt.progress["answers"] == {}

    def test_begin_twice_resumes_same_attempt(self, db, service, student, quiz):
        first = service.begin(student, quiz.id)
        second = service.begin(student, quiz.id)

        assert second.outcome == OUTCOME_RESUME
        assert second.attempt.id == first.attempt.id
        assert db.query(QuizAttempt).count() == 1

    def test_resume_after_progress_keeps_state(self, db, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        ProgressTracker(db).save(
            student.id, attempt.id, {"currentQuestionIndex": 1, "answers": {"1": 0}}
        )

        resumed = service.begin(student, quiz.id)

        assert resumed.outcome == OUTCOME_RESUME
        assert resumed.attempt.current_question_index == 1

    def test_timer_seeds_remaining_time(self, service, student, make_quiz, enroll):
        timed = make_quiz(MIXED_QUIZ, timer_seconds=300)
        enroll(student, timed)

        attempt = service.begin(student, timed.id).attempt

        assert attempt.remaining_time_seconds == 300

    def test_unenrolled_user_is_forbidden(self, service, make_user, quiz):
        with pytest.raises(Forbidden) as exc:
            service.begin(make_user(), quiz.id)

        assert "enroll" in exc.value.message

    def test_unpublished_quiz_is_forbidden(self, service, student, make_quiz, enroll):
        draft = make_quiz(MIXED_QUIZ, status=QUIZ_STATUS_DRAFT)
        enroll(student, draft)

        with pytest.raises(Forbidden):
            service.begin(student, draft.id)

    def test_owner_can_start_draft_without_enrollment(self, service, make_user, make_quiz):
        owner = make_user(role="teacher")
        draft = make_quiz(MIXED_QUIZ, owner=owner, status=QUIZ_STATUS_DRAFT)

        assert service.begin(owner, draft.id).outcome == OUTCOME_CREATED

    def test_concurrent_begin_resumes_the_winning_attempt(
        self, db, service, student, quiz, monkeypatch
    ):
        """A request that missed the active attempt loses on the unique index"""
        winner = service.begin(student, quiz.id).attempt
        real_lookup = service._find_active_attempt
        calls = []

        def stale_lookup(user_id, quiz_id):
            calls.append(quiz_id)
            if len(calls) == 1:
                return None
            return real_lookup(user_id, quiz_id)

        monkeypatch.setattr(service, "_find_active_attempt", stale_lookup)

        result = service.begin(student, quiz.id)

        assert len(calls) == 2
        assert result.outcome == OUTCOME_RESUME
        assert result.attempt.id == winner.id
        active = db.query(QuizAttempt).filter_by(
            user_id=student.id, quiz_id=quiz.id, status=ATTEMPT_IN_PROGRESS
        )
        assert active.count() == 1

    def test_second_active_attempt_row_is_rejected(self, db, service, student, quiz):
        service.begin(student, quiz.id)
        db.add(
            QuizAttempt(
                user_id=student.id,
                quiz_id=quiz.id,
                status=ATTEMPT_IN_PROGRESS,
                total_questions=2,
                started_at=utcnow(),
            )
        )

        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

        # Finished attempts do not occupy the active slot
        db.add(
            QuizAttempt(
                user_id=student.id,
                quiz_id=quiz.id,
                status=ATTEMPT_ABANDONED,
                total_questions=2,
                started_at=utcnow(),
            )
        )
        db.commit()
        assert db.query(QuizAttempt).count() == 2

    def test_missing_quiz(self, service, student):
        with pytest.raises(NotFound):
            service.begin(student, 999)

    def test_resume_finished_attempt_is_invalid(self, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        service.abandon(student, attempt.id)

        with pytest.raises(InvalidState):
            service.resume(student, attempt.id)


class TestQuota:
    """Attempt limits"""

    def complete_attempt(self, service, student, quiz, force_new=False):
        attempt = service.begin(student, quiz.id, force_new=force_new).attempt
        return service.submit(student, attempt.id, answers={})

    def test_single_attempt_quiz_blocks_second_start(self, service, student, make_quiz, enroll):
        quiz = make_quiz(MIXED_QUIZ, allow_multiple_attempts=False)
        enroll(student, quiz)
        self.complete_attempt(service, student, quiz)

        with pytest.raises(QuotaExceeded) as exc:
            service.begin(student, quiz.id)
        assert exc.value.message == "You have already completed this quiz."

    def test_single_attempt_quiz_allows_force_new(self, service, student, make_quiz, enroll):
        quiz = make_quiz(MIXED_QUIZ, allow_multiple_attempts=False)
        enroll(student, quiz)
        previous = self.complete_attempt(service, student, quiz)

        result = service.begin(student, quiz.id, force_new=True)

        assert result.outcome == OUTCOME_CREATED
        assert result.attempt.id != previous.attempt.id

    def test_max_attempts_applies_even_with_force_new(
        self, db, service, student, make_quiz, enroll
    ):
        quiz = make_quiz(MIXED_QUIZ, max_attempts=1)
        enroll(student, quiz)
        self.complete_attempt(service, student, quiz)

        with pytest.raises(QuotaExceeded) as exc:
            service.begin(student, quiz.id, force_new=True)
        assert "maximum number of attempts (1)" in exc.value.message
        assert db.query(QuizAttempt).count() == 1

    def test_rejected_force_new_keeps_active_attempt(
        self, db, service, student, make_quiz, enroll
    ):
        quiz = make_quiz(MIXED_QUIZ, max_attempts=1)
        enroll(student, quiz)
        self.complete_attempt(service, student, quiz)
        active = QuizAttempt(
            user_id=student.id,
            quiz_id=quiz.id,
            status=ATTEMPT_IN_PROGRESS,
            total_questions=2,
            started_at=utcnow(),
        )
        db.add(active)
        db.commit()

        with pytest.raises(QuotaExceeded):
            service.begin(student, quiz.id, force_new=True)

        db.refresh(active)
        assert active.status == ATTEMPT_IN_PROGRESS

    def test_elevated_role_skips_quota(self, service, make_user, make_quiz):
        admin = make_user(role="admin")
        quiz = make_quiz(MIXED_QUIZ, allow_multiple_attempts=False, max_attempts=1)
        self.complete_attempt(service, admin, quiz)

        assert service.begin(admin, quiz.id).outcome == OUTCOME_CREATED

    def test_force_new_abandons_active_attempt(self, db, service, student, quiz):
        first = service.begin(student, quiz.id).attempt

        second = service.begin(student, quiz.id, force_new=True).attempt

        db.refresh(first)
        assert first.status == ATTEMPT_ABANDONED
        assert second.id != first.id
        assert second.status == ATTEMPT_IN_PROGRESS


class TestSubmission:
    """submit"""

    def test_submit_grades_and_completes(self, db, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        q1, q2 = question_ids(quiz)

        result = service.submit(student, attempt.id, answers={q1: 0, q2: False})

        completed = result.attempt
        assert completed.status == ATTEMPT_COMPLETED
        assert completed.completed_at is not None
        assert float(completed.score) == 0.0
        assert float(completed.penalty_points) == 1.0
        assert completed.correct_answers == 0
        assert completed.incorrect_answers == 2
        assert completed.current_question_index == 2
        assert completed.progress["completionPercentage"] == 100.0
        assert result.summary.total_points == 3
        assert db.query(AttemptAnswer).filter_by(quiz_attempt_id=attempt.id).count() == 2

    def test_submit_writes_one_row_per_question(self, db, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        q1, _ = question_ids(quiz)

        result = service.submit(student, attempt.id, answers={q1: 1})

        rows = db.query(AttemptAnswer).filter_by(quiz_attempt_id=attempt.id).all()
        assert len(rows) == 2
        assert result.attempt.correct_answers == 1
        assert float(result.attempt.score) == 66.67
        assert result.answers[q1] == 1

    def test_submit_twice_is_invalid(self, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        service.submit(student, attempt.id, answers={})

        with pytest.raises(InvalidState):
            service.submit(student, attempt.id, answers={})

    def test_malformed_answers_are_rejected(self, db, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt

        with pytest.raises(ValidationFailed):
            service.submit(student, attempt.id, answers=["not", "a", "map"])
        with pytest.raises(ValidationFailed):
            service.submit(student, attempt.id, answers={}, time_spent_seconds=-1)

        db.refresh(attempt)
        assert attempt.status == ATTEMPT_IN_PROGRESS

    def test_failure_mid_submission_rolls_everything_back(self, db, service, student, make_quiz, enroll):
        quiz = make_quiz([("true_false", True, 1)] * 5)
        enroll(student, quiz)
        attempt = service.begin(student, quiz.id).attempt
        inserted = []

        def fail_on_third_row(mapper, connection, target):
            inserted.append(target)
            if len(inserted) == 3:
                raise RuntimeError("disk full")

        event.listen(AttemptAnswer, "before_insert", fail_on_third_row)
        try:
            with pytest.raises(InternalError):
                service.submit(
                    student, attempt.id, answers={qid: True for qid in question_ids(quiz)}
                )
        finally:
            event.remove(AttemptAnswer, "before_insert", fail_on_third_row)

        stored = db.query(QuizAttempt).filter_by(id=attempt.id).one()
        assert stored.status == ATTEMPT_IN_PROGRESS
        assert stored.score is None
        assert db.query(AttemptAnswer).filter_by(quiz_attempt_id=attempt.id).count() == 0

    def test_skipped_question_carries_no_penalty(self, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        q1, _ = question_ids(quiz)

        result = service.submit(student, attempt.id, answers={q1: 1})

        assert result.attempt.incorrect_answers == 1
        assert float(result.attempt.penalty_points) == 0.0

    def test_supplied_time_spent_wins(self, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt

        result = service.submit(student, attempt.id, answers={}, time_spent_seconds=321)

        assert result.attempt.time_spent_seconds == 321

    def test_saved_time_spent_is_used_when_omitted(self, db, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        ProgressTracker(db).save(student.id, attempt.id, {"timeSpent": 45})

        result = service.submit(student, attempt.id, answers={})

        assert result.attempt.time_spent_seconds == 45

    def test_wall_time_is_used_without_any_saved_time(self, db, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        attempt.started_at = utcnow() - timedelta(seconds=120)
        db.commit()

        result = service.submit(student, attempt.id, answers={})

        assert 119 <= result.attempt.time_spent_seconds <= 130


class TestAbandon:
    def test_abandon_is_idempotent(self, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt

        assert service.abandon(student, attempt.id).status == ATTEMPT_ABANDONED
        assert service.abandon(student, attempt.id).status == ATTEMPT_ABANDONED

    def test_abandon_leaves_completed_attempt_alone(self, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt
        service.submit(student, attempt.id, answers={})

        assert service.abandon(student, attempt.id).status == ATTEMPT_COMPLETED

    def test_other_users_attempt_is_not_found(self, service, student, make_user, quiz):
        attempt = service.begin(student, quiz.id).attempt

        with pytest.raises(NotFound):
            service.abandon(make_user(), attempt.id)


class TestQueries:
    """list_attempts / get_statistics / get_attempt"""

    def test_get_attempt_hides_answer_keys_until_completed(self, service, student, quiz):
        attempt = service.begin(student, quiz.id).attempt

        _, _, include_correctness = service.get_attempt(student, attempt.id)
        assert include_correctness is False

        service.submit(student, attempt.id, answers={})
        _, _, include_correctness = service.get_attempt(student, attempt.id)
        assert include_correctness is True

    def test_list_attempts_filters_and_paginates(self, service, student, quiz):
        for _ in range(3):
            attempt = service.begin(student, quiz.id).attempt
            service.submit(student, attempt.id, answers={})
        service.begin(student, quiz.id)

        attempts, pagination = service.list_attempts(student.id, size=2)
        assert pagination == {"total": 4, "page": 1, "size": 2, "total_pages": 2}
        assert len(attempts) == 2
        assert attempts[0].id > attempts[1].id

        completed, pagination = service.list_attempts(
            student.id, quiz_id=quiz.id, status=ATTEMPT_COMPLETED
        )
        assert pagination["total"] == 3
        assert all(a.status == ATTEMPT_COMPLETED for a in completed)

    def test_list_attempts_rejects_unknown_status(self, service, student):
        with pytest.raises(ValidationFailed):
            service.list_attempts(student.id, status="paused")

    def test_statistics(self, service, student, quiz):
        q1, q2 = question_ids(quiz)
        attempt = service.begin(student, quiz.id).attempt
        service.submit(student, attempt.id, answers={q1: 1, q2: True}, time_spent_seconds=30)
        attempt = service.begin(student, quiz.id).attempt
        service.submit(student, attempt.id, answers={q1: 0, q2: True}, time_spent_seconds=10)
        service.begin(student, quiz.id)

        stats = service.get_statistics(student.id, quiz_id=quiz.id)

        assert stats["total_attempts"] == 3
        assert stats["completed_attempts"] == 2
        assert stats["completion_rate"] == 66.67
        assert stats["best_score"] == 100.0
        assert stats["average_score"] == pytest.approx(66.67, abs=0.01)
        assert stats["total_time_spent"] == 40
        assert len(stats["recent_attempts"]) == 2

    def test_statistics_without_attempts(self, service, student):
        stats = service.get_statistics(student.id)

        assert stats["total_attempts"] == 0
        assert stats["completion_rate"] == 0
        assert stats["recent_attempts"] == []
