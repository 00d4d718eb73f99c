"""History reconciliation.

Combines the two local views of a finished exam into one list:
- ExamSubmission: canonical, sync-tracked summary (may come from the server)
- ExamAttempt: local, detail-rich record with per-question answers

Reading the history first removes the redundant rows a local-first write
followed by a server-confirmed copy can leave behind, then joins the two
tables, then deduplicates what is left by (score, passed, minute).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from examsync.core.matching import CompositeKey, find_attempt_match, select_attempt_match
from examsync.core.scoring import DomainScore
from examsync.db.attempts_repository import (
    ExamAttempt,
    count_answers_by_attempt,
    delete_attempt,
    get_answers,
    get_attempt,
    list_completed_attempts,
)
from examsync.db.database import Database
from examsync.db.questions_repository import get_questions_by_ids
from examsync.db.submissions_repository import (
    ExamSubmission,
    delete_submission,
    get_submission_by_key,
    list_submissions,
)
from examsync.utils.timestamps import parse_timestamp, seconds_between

logger = structlog.get_logger(__name__)

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class HistoryEntry:
    """One finished exam as shown in the history list."""

    id: str
    score: float
    passed: bool
    duration: int
    submitted_at: str
    can_review: bool
    attempt_id: str | None = None
    exam_type_id: str | None = None
    sync_status: str | None = None  # None for attempts without a submission
    domain_scores: list[DomainScore] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "score": self.score,
            "passed": self.passed,
            "duration": self.duration,
            "submitted_at": self.submitted_at,
            "can_review": self.can_review,
            "attempt_id": self.attempt_id,
            "exam_type_id": self.exam_type_id,
            "sync_status": self.sync_status,
            "domain_scores": (
                [d.to_dict() for d in self.domain_scores] if self.domain_scores is not None else None
            ),
        }


@dataclass
class ReviewItem:
    """One answered question of a reviewed exam."""

    question_id: str
    order_index: int
    selected_answers: list[str]
    is_correct: bool | None
    is_flagged: bool
    text: str | None = None
    options: list[dict[str, str]] = field(default_factory=list)
    correct_answers: list[str] = field(default_factory=list)
    explanation: str | None = None
    domain: str | None = None


@dataclass
class ReviewDetail:
    """Per-question detail of one finished exam."""

    entry_id: str
    attempt: ExamAttempt
    items: list[ReviewItem]
    domain_scores: list[DomainScore] | None = None


@dataclass
class CleanupReport:
    submissions_removed: list[str] = field(default_factory=list)
    attempts_removed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.submissions_removed) + len(self.attempts_removed)


class ReviewNotAvailableError(Exception):
    """No per-question detail is stored for the requested exam."""

    pass


# =============================================================================
# RECONCILER
# =============================================================================


def _minute_bucket(timestamp: str) -> str:
    return parse_timestamp(timestamp).strftime("%Y-%m-%dT%H:%M")


def _near(attempt: ExamAttempt, score: float, passed: bool, timestamp: str, window: float) -> bool:
    """Same result as an exam finished within window seconds of timestamp."""
    if attempt.completed_at is None or attempt.score != score or attempt.passed != passed:
        return False
    return seconds_between(attempt.completed_at, timestamp) < window


class HistoryReconciler:
    """Builds the deduplicated, newest-first exam history."""

    def __init__(
        self,
        db: Database,
        orphan_window_seconds: float = 60.0,
        composite_tolerance_seconds: float = 1.0,
    ):
        self.db = db
        self.orphan_window_seconds = orphan_window_seconds
        self.composite_tolerance_seconds = composite_tolerance_seconds

    def cleanup(self) -> CleanupReport:
        """Delete redundant local copies of the same finished exam.

        Two cases:
        - A submission without an idempotency key that repeats a completed
          attempt (score, passed, time within the orphan window) which already
          has its own submission.
        - A completed attempt that no submission points to, repeating an
          attempt that one does, and holding no more answers than it.
        """
        report = CleanupReport()
        attempts = list_completed_attempts(self.db)
        answer_counts = count_answers_by_attempt(self.db)

        refs = self._references(list_submissions(self.db))
        for submission in list_submissions(self.db):
            if submission.local_id is not None:
                continue
            for attempt in attempts:
                if not refs.get(attempt.id, set()) - {submission.id}:
                    continue
                if not _near(
                    attempt,
                    submission.score,
                    submission.passed,
                    submission.submitted_at,
                    self.orphan_window_seconds,
                ):
                    continue
                if delete_submission(self.db, submission.id):
                    report.submissions_removed.append(submission.id)
                break

        refs = self._references(list_submissions(self.db))
        referenced = [a for a in attempts if a.id in refs]
        for orphan in attempts:
            if orphan.id in refs:
                continue
            for attempt in referenced:
                if not _near(
                    attempt,
                    orphan.score,
                    orphan.passed,
                    orphan.completed_at or orphan.started_at,
                    self.orphan_window_seconds,
                ):
                    continue
                if answer_counts.get(orphan.id, 0) > answer_counts.get(attempt.id, 0):
                    continue
                if delete_attempt(self.db, orphan.id):
                    report.attempts_removed.append(orphan.id)
                break

        if report.total:
            logger.info(
                "history.cleanup",
                submissions_removed=len(report.submissions_removed),
                attempts_removed=len(report.attempts_removed),
            )
        return report

    def get_history(self) -> list[HistoryEntry]:
        """Reconciled history, newest first.

        Idempotent: without intervening writes, repeated calls return the
        same list.
        """
        self.cleanup()

        submissions = list_submissions(self.db)
        attempts = list_completed_attempts(self.db)
        answer_counts = count_answers_by_attempt(self.db)
        attempts_by_id = {a.id: a for a in attempts}

        # Join on the idempotency key first, then on the composite key
        joined: dict[str, ExamAttempt] = {}
        for submission in submissions:
            attempt = attempts_by_id.get(submission.attempt_key) or attempts_by_id.get(submission.id)
            if attempt is not None:
                joined[submission.id] = attempt

        used = {a.id for a in joined.values()}
        for submission in submissions:
            if submission.id in joined:
                continue
            free = [a for a in attempts if a.id not in used]
            attempt = select_attempt_match(
                free,
                CompositeKey.for_submission(submission),
                self.composite_tolerance_seconds,
            )
            if attempt is not None:
                joined[submission.id] = attempt
                used.add(attempt.id)

        entries = [
            self._submission_entry(s, joined.get(s.id), answer_counts) for s in submissions
        ]
        entries.extend(
            self._attempt_entry(a, answer_counts) for a in attempts if a.id not in used
        )

        entries.sort(key=lambda e: e.id)
        entries.sort(key=lambda e: parse_timestamp(e.submitted_at), reverse=True)
        return self._dedupe(entries)

    def get_review_detail(self, entry_id: str) -> ReviewDetail:
        """Per-question detail for a history entry (submission or attempt id).

        Raises:
            ReviewNotAvailableError: If no answers are stored for that exam
        """
        submission = get_submission_by_key(self.db, entry_id)
        attempt: ExamAttempt | None
        if submission is not None:
            attempt = find_attempt_match(
                self.db,
                submission.attempt_key,
                CompositeKey.for_submission(submission),
                self.composite_tolerance_seconds,
            )
        else:
            attempt = get_attempt(self.db, entry_id)

        if attempt is None or attempt.status != "completed":
            raise ReviewNotAvailableError(f"No review available for: {entry_id}")

        answers = get_answers(self.db, attempt.id)
        if not answers:
            raise ReviewNotAvailableError(f"No answers stored for: {entry_id}")

        questions = get_questions_by_ids(self.db, [a.question_id for a in answers])
        items = []
        for answer in answers:
            question = questions.get(answer.question_id)
            items.append(
                ReviewItem(
                    question_id=answer.question_id,
                    order_index=answer.order_index,
                    selected_answers=answer.selected_answers,
                    is_correct=answer.is_correct,
                    is_flagged=answer.is_flagged,
                    text=question.text if question else None,
                    options=question.options if question else [],
                    correct_answers=question.correct_answers if question else [],
                    explanation=question.explanation if question else None,
                    domain=question.domain if question else None,
                )
            )

        return ReviewDetail(
            entry_id=entry_id,
            attempt=attempt,
            items=items,
            domain_scores=submission.domain_scores if submission else None,
        )

    # -------------------------------------------------------------------------

    @staticmethod
    def _references(submissions: list[ExamSubmission]) -> dict[str, set[str]]:
        """Submission ids pointing at each attempt id, by key or by id."""
        refs: dict[str, set[str]] = {}
        for submission in submissions:
            for key in {submission.attempt_key, submission.id}:
                refs.setdefault(key, set()).add(submission.id)
        return refs

    @staticmethod
    def _submission_entry(
        submission: ExamSubmission,
        attempt: ExamAttempt | None,
        answer_counts: dict[str, int],
    ) -> HistoryEntry:
        return HistoryEntry(
            id=submission.id,
            score=submission.score,
            passed=submission.passed,
            duration=submission.duration,
            submitted_at=submission.submitted_at,
            can_review=attempt is not None and answer_counts.get(attempt.id, 0) > 0,
            attempt_id=attempt.id if attempt else None,
            exam_type_id=submission.exam_type_id,
            sync_status=submission.sync_status.value,
            domain_scores=submission.domain_scores,
        )

    @staticmethod
    def _attempt_entry(attempt: ExamAttempt, answer_counts: dict[str, int]) -> HistoryEntry:
        return HistoryEntry(
            id=attempt.id,
            score=attempt.score or 0,
            passed=bool(attempt.passed),
            duration=attempt.duration_seconds,
            submitted_at=attempt.completed_at or attempt.started_at,
            can_review=answer_counts.get(attempt.id, 0) > 0,
            attempt_id=attempt.id,
        )

    @staticmethod
    def _dedupe(entries: list[HistoryEntry]) -> list[HistoryEntry]:
        """Keep one entry per (score, passed, minute), preferring a reviewable one."""
        kept: list[HistoryEntry] = []
        index: dict[tuple[float, bool, str], int] = {}

        for entry in entries:
            bucket = (entry.score, entry.passed, _minute_bucket(entry.submitted_at))
            position = index.get(bucket)
            if position is None:
                index[bucket] = len(kept)
                kept.append(entry)
            elif entry.can_review and not kept[position].can_review:
                kept[position] = entry

        return kept
