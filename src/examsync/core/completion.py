"""Exam and practice completion flow.

Responsibilities:
- Start an exam attempt (at most one in progress)
- Record answers while the exam runs
- Complete the attempt: score it, persist the result, then hand a summary
  to the SubmissionTracker and update the local aggregates
- Count finished practice sessions

The attempt's completion is committed before the submission row is
written, so a storage failure on the submission never loses the result.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from examsync.config.app_config import ExamConfig
from examsync.core.scoring import calculate_domain_breakdown, score_answers
from examsync.core.submission_tracker import ExamSummary, SubmissionTracker
from examsync.db.attempts_repository import (
    AttemptNotFoundError,
    ExamAnswer,
    ExamAttempt,
    abandon_attempt,
    complete_attempt,
    create_attempt,
    get_answers,
    get_attempt,
    save_answer,
    update_remaining_time,
)
from examsync.db.database import Database
from examsync.db.questions_repository import get_questions_by_ids
from examsync.db.stats_repository import (
    UserStats,
    get_user_stats,
    increment_exam_count,
    increment_practice_count,
    update_streak_on_completion,
)
from examsync.db.submissions_repository import ExamSubmission
from examsync.utils.timestamps import parse_timestamp, utc_now_iso

logger = structlog.get_logger(__name__)


@dataclass
class CompletedExam:
    """Outcome of completing an exam."""

    attempt: ExamAttempt
    submission: ExamSubmission
    correct_count: int


class ExamCompletionService:
    """Drives an exam attempt from start to a tracked submission."""

    def __init__(self, db: Database, tracker: SubmissionTracker, exam_config: ExamConfig):
        self.db = db
        self.tracker = tracker
        self.exam_config = exam_config

    def start_exam(
        self,
        total_questions: int | None = None,
        time_limit_ms: int | None = None,
    ) -> ExamAttempt:
        """Start a new attempt.

        Raises:
            ActiveAttemptExistsError: If an attempt is already in progress
        """
        return create_attempt(
            self.db,
            total_questions=total_questions or self.exam_config.questions_per_exam,
            time_limit_ms=time_limit_ms if time_limit_ms is not None else self.exam_config.time_limit_ms,
        )

    def record_answer(
        self,
        attempt_id: str,
        question_id: str,
        order_index: int,
        selected_answers: list[str],
        is_flagged: bool = False,
        is_correct: bool | None = None,
    ) -> ExamAnswer:
        """Save (or overwrite) the answer to one question.

        Correctness is derived from the local question bank when not given;
        it stays unknown for questions the bank does not hold.
        """
        if is_correct is None:
            question = get_questions_by_ids(self.db, [question_id]).get(question_id)
            if question is not None:
                is_correct = sorted(selected_answers) == sorted(question.correct_answers)

        answer = ExamAnswer(
            exam_attempt_id=attempt_id,
            question_id=question_id,
            order_index=order_index,
            selected_answers=list(selected_answers),
            is_correct=is_correct,
            is_flagged=is_flagged,
        )
        return save_answer(self.db, answer)

    def save_remaining_time(self, attempt_id: str, remaining_time_ms: int) -> None:
        update_remaining_time(self.db, attempt_id, remaining_time_ms)

    def complete_exam(self, attempt_id: str, completed_at: str | None = None) -> CompletedExam:
        """Score and finish an attempt, then record its submission.

        Raises:
            AttemptNotFoundError: If the attempt is not in progress
        """
        attempt = get_attempt(self.db, attempt_id)
        if attempt is None or attempt.status != "in-progress":
            raise AttemptNotFoundError(f"No in-progress exam attempt: {attempt_id}")

        answers = get_answers(self.db, attempt_id)
        result = score_answers(answers, attempt.total_questions, self.exam_config.passing_score)

        finished_at = completed_at or utc_now_iso()
        attempt = complete_attempt(
            self.db, attempt_id, score=result.score, passed=result.passed, completed_at=finished_at
        )

        questions = get_questions_by_ids(self.db, [a.question_id for a in answers])
        breakdown = calculate_domain_breakdown(answers, questions, self.exam_config.domains)

        submission = self.tracker.record_completion(
            ExamSummary(
                exam_type_id=self.exam_config.exam_type_id,
                score=result.score,
                passed=result.passed,
                duration=attempt.duration_seconds,
                domain_scores=breakdown or None,
                submitted_at=finished_at,
                attempt_id=attempt_id,
            )
        )

        increment_exam_count(
            self.db,
            time_spent_ms=attempt.duration_seconds * 1000,
            questions_count=len(answers),
            activity_at=finished_at,
        )
        update_streak_on_completion(self.db, parse_timestamp(finished_at).date().isoformat())

        logger.info(
            "exam.completed",
            attempt_id=attempt_id,
            score=result.score,
            passed=result.passed,
            correct=result.correct_count,
        )
        return CompletedExam(attempt=attempt, submission=submission, correct_count=result.correct_count)

    def abandon_exam(self, attempt_id: str) -> bool:
        """Abandon an in-progress attempt. Abandoned attempts are never synced."""
        return abandon_attempt(self.db, attempt_id)

    def complete_practice(self, questions_count: int, time_spent_ms: int) -> UserStats:
        """Count a finished practice session and return the updated stats."""
        increment_practice_count(self.db, questions_count=questions_count, time_spent_ms=time_spent_ms)
        logger.info("practice.completed", questions=questions_count, time_spent_ms=time_spent_ms)
        return get_user_stats(self.db)
