"""Submission tracking.

Turns a finished exam into a sync-tracked ExamSubmission row and owns the
status transitions of that row (PENDING -> SYNCED | FAILED, FAILED -> SYNCED).
Nothing here performs network I/O; listeners are told about new rows so a
sync engine can wake up.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable

import structlog

from examsync.core.scoring import DomainScore
from examsync.db.database import Database
from examsync.db.submissions_repository import (
    ExamSubmission,
    SubmissionCounts,
    SyncStatus,
    count_by_status,
    get_submission,
    insert_submission,
    mark_failed,
    mark_synced,
)
from examsync.utils.timestamps import normalize_timestamp, utc_now_iso

logger = structlog.get_logger(__name__)

CompletionListener = Callable[[ExamSubmission], None]


@dataclass
class ExamSummary:
    """Finalized result of one exam, as handed over by the completion flow."""

    exam_type_id: str
    score: float
    passed: bool
    duration: int  # seconds
    domain_scores: list[DomainScore] | None = None
    submitted_at: str | None = None
    attempt_id: str | None = None
    user_id: str | None = None


@dataclass
class SubmissionTracker:
    """Writes submission rows and exposes their sync counters."""

    db: Database
    listeners: list[CompletionListener] = field(default_factory=list)

    def add_listener(self, listener: CompletionListener) -> None:
        """Register a callback fired after every recorded completion."""
        self.listeners.append(listener)

    def record_completion(self, summary: ExamSummary, local_only: bool = False) -> ExamSubmission:
        """Persist a finished exam as a new submission and return it.

        The idempotency key is the owning attempt's id when there is one, a
        fresh UUID otherwise; it doubles as the row id. Rows recorded with
        `local_only` are kept with status LOCAL and never pushed.

        Raises:
            sqlite3.Error: If the row cannot be written
        """
        key = summary.attempt_id or str(uuid.uuid4())
        now = utc_now_iso()
        submission = ExamSubmission(
            id=key,
            local_id=key,
            user_id=summary.user_id,
            exam_type_id=summary.exam_type_id,
            score=summary.score,
            passed=summary.passed,
            duration=max(0, summary.duration),
            submitted_at=normalize_timestamp(summary.submitted_at) if summary.submitted_at else now,
            created_at=now,
            sync_status=SyncStatus.LOCAL if local_only else SyncStatus.PENDING,
            domain_scores=summary.domain_scores,
        )

        if not insert_submission(self.db, submission):
            logger.info("submission.already_recorded", local_id=key)
            return get_submission(self.db, key) or submission

        logger.info(
            "submission.recorded",
            local_id=key,
            score=submission.score,
            passed=submission.passed,
            status=submission.sync_status.value,
        )

        for listener in self.listeners:
            try:
                listener(submission)
            except Exception as e:
                logger.warning("submission.listener_failed", local_id=key, error=str(e))

        return submission

    def counts(self) -> SubmissionCounts:
        return count_by_status(self.db)

    def pending_count(self) -> int:
        """Submissions waiting for their first push."""
        return self.counts().pending

    def failed_count(self) -> int:
        """Submissions whose last push failed."""
        return self.counts().failed

    def mark_synced(self, submission_id: str) -> ExamSubmission | None:
        submission = mark_synced(self.db, submission_id)
        logger.debug("submission.synced", submission_id=submission_id)
        return submission

    def mark_failed(self, submission_id: str) -> ExamSubmission | None:
        submission = mark_failed(self.db, submission_id)
        logger.debug(
            "submission.failed",
            submission_id=submission_id,
            retries=submission.sync_retries if submission else None,
        )
        return submission
