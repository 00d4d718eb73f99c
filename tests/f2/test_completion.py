"""Tests for submission tracking and the completion flow."""

import pytest

from examsync.core.submission_tracker import ExamSummary
from examsync.db.attempts_repository import (
    ActiveAttemptExistsError,
    AttemptNotFoundError,
    get_answers,
    get_attempt,
)
from examsync.db.stats_repository import get_study_streak, get_user_stats
from examsync.db.submissions_repository import SyncStatus, get_submission, list_submissions


class TestSubmissionTracker:
    """Tests for SubmissionTracker."""

    def test_record_completion_is_pending(self, tracker):
        submission = tracker.record_completion(
            ExamSummary(exam_type_id="CLF-C02", score=80, passed=True, duration=600, attempt_id="a1")
        )
        assert submission.id == "a1"
        assert submission.local_id == "a1"
        assert submission.sync_status is SyncStatus.PENDING
        assert tracker.pending_count() == 1

    def test_generates_key_without_attempt(self, tracker):
        submission = tracker.record_completion(
            ExamSummary(exam_type_id="CLF-C02", score=80, passed=True, duration=600)
        )
        assert submission.local_id == submission.id
        assert len(submission.id) == 36

    def test_duplicate_returns_stored_row(self, tracker, db):
        """Recording the same attempt twice leaves one row."""
        summary = ExamSummary(exam_type_id="CLF-C02", score=80, passed=True, duration=600, attempt_id="a1")
        tracker.record_completion(summary)
        again = tracker.record_completion(summary)
        assert again.id == "a1"
        assert len(list_submissions(db)) == 1

    def test_local_only(self, tracker):
        submission = tracker.record_completion(
            ExamSummary(exam_type_id="CLF-C02", score=80, passed=True, duration=600),
            local_only=True,
        )
        assert submission.sync_status is SyncStatus.LOCAL
        assert tracker.counts().local == 1
        assert tracker.pending_count() == 0

    def test_listeners_notified(self, tracker):
        seen = []
        tracker.add_listener(seen.append)
        submission = tracker.record_completion(
            ExamSummary(exam_type_id="CLF-C02", score=80, passed=True, duration=600)
        )
        assert seen == [submission]

    def test_listener_failure_does_not_lose_row(self, tracker, db):
        def broken(_):
            raise RuntimeError("listener down")

        tracker.add_listener(broken)
        submission = tracker.record_completion(
            ExamSummary(exam_type_id="CLF-C02", score=80, passed=True, duration=600)
        )
        assert get_submission(db, submission.id) is not None

    def test_status_transitions(self, tracker):
        submission = tracker.record_completion(
            ExamSummary(exam_type_id="CLF-C02", score=80, passed=True, duration=600)
        )
        assert tracker.mark_failed(submission.id).sync_retries == 1
        assert tracker.failed_count() == 1
        assert tracker.mark_synced(submission.id).sync_status is SyncStatus.SYNCED
        assert tracker.failed_count() == 0


class TestExamCompletionService:
    """Tests for ExamCompletionService."""

    def test_single_in_progress(self, completion):
        completion.start_exam()
        with pytest.raises(ActiveAttemptExistsError):
            completion.start_exam()

    def test_record_answer_derives_correctness(self, completion, question_bank):
        attempt = completion.start_exam()
        right = completion.record_answer(attempt.id, "q1", 0, ["a"])
        wrong = completion.record_answer(attempt.id, "q2", 1, ["b"])
        unknown = completion.record_answer(attempt.id, "not-in-bank", 2, ["a"])
        assert right.is_correct is True
        assert wrong.is_correct is False
        assert unknown.is_correct is None

    def test_complete_exam(self, completion, question_bank, db):
        """Completion scores, stores the submission and updates aggregates."""
        attempt = completion.start_exam()
        completion.record_answer(attempt.id, "q1", 0, ["a"])
        completion.record_answer(attempt.id, "q2", 1, ["a"])
        completion.record_answer(attempt.id, "q3", 2, ["a"])
        completion.record_answer(attempt.id, "q4", 3, ["b"])

        done = completion.complete_exam(attempt.id, completed_at="2099-01-01T00:00:00.000+00:00")

        assert done.correct_count == 3
        assert done.attempt.score == 75
        assert done.attempt.passed is True
        assert done.submission.local_id == attempt.id
        assert done.submission.sync_status is SyncStatus.PENDING
        assert {d.domain_id: (d.correct, d.total) for d in done.submission.domain_scores} == {
            "cloud-concepts": (2, 2),
            "security-compliance": (1, 2),
        }

        stats = get_user_stats(db)
        assert stats.total_exams == 1
        assert stats.total_questions == 4
        assert get_study_streak(db).last_completion_date == "2099-01-01"

    def test_complete_requires_in_progress(self, completion):
        attempt = completion.start_exam()
        completion.complete_exam(attempt.id)
        with pytest.raises(AttemptNotFoundError):
            completion.complete_exam(attempt.id)

    def test_abandon(self, completion, db):
        attempt = completion.start_exam()
        assert completion.abandon_exam(attempt.id) is True
        assert get_attempt(db, attempt.id).status == "abandoned"
        assert list_submissions(db) == []

    def test_remaining_time(self, completion, db):
        attempt = completion.start_exam()
        completion.save_remaining_time(attempt.id, 1234)
        assert get_attempt(db, attempt.id).remaining_time_ms == 1234

    def test_answers_kept_in_order(self, completion, question_bank, db):
        attempt = completion.start_exam()
        completion.record_answer(attempt.id, "q2", 1, ["a"])
        completion.record_answer(attempt.id, "q1", 0, ["a"], is_flagged=True)
        answers = get_answers(db, attempt.id)
        assert [a.question_id for a in answers] == ["q1", "q2"]
        assert answers[0].is_flagged is True

    def test_complete_practice(self, completion):
        stats = completion.complete_practice(questions_count=10, time_spent_ms=60_000)
        assert stats.total_practice == 1
        assert stats.total_exams == 0
        assert stats.total_questions == 10
