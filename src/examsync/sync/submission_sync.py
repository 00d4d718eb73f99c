"""Push of sync-tracked submissions to the remote store.

Every push attempt moves the row to SYNCED or FAILED (counting the
attempt). FAILED rows are never discarded: past the retry ceiling they
wait for a manual retry.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import structlog

from examsync.config.app_config import SyncConfig
from examsync.core.submission_tracker import SubmissionTracker
from examsync.db.attempts_repository import get_answers
from examsync.db.database import Database
from examsync.db.submissions_repository import ExamSubmission, SyncStatus, list_by_status
from examsync.sync.remote import RemoteStore
from examsync.sync.schemas import RemoteAnswer, RemoteDomainScore, SubmitExamRequest
from examsync.sync.transport import RemoteAuthError, RemoteError

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class PushResult:
    """Outcome of pushing a batch of submissions."""

    synced: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.synced) + len(self.failed)

    def merge(self, other: PushResult) -> PushResult:
        return PushResult(
            synced=self.synced + other.synced,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
        )


def retry_delay(retries: int, base: float, maximum: float) -> float:
    """Exponential backoff before the next retry of a FAILED row."""
    if base <= 0:
        return 0.0
    return min(base * (2 ** retries), maximum)


def build_submit_request(db: Database, submission: ExamSubmission) -> SubmitExamRequest:
    """Wire body for a submission, with answers when they are still stored.

    Missing answers never block a push; the summary alone is sent.
    """
    answers: list[RemoteAnswer] | None = None
    try:
        stored = get_answers(db, submission.attempt_key)
    except sqlite3.Error as e:
        logger.warning("push.answers_unavailable", submission_id=submission.id, error=str(e))
        stored = []
    if stored:
        answers = [
            RemoteAnswer(
                question_id=a.question_id,
                selected_answers=a.selected_answers,
                is_correct=a.is_correct,
                order_index=a.order_index,
            )
            for a in stored
        ]

    domain_scores = None
    if submission.domain_scores is not None:
        domain_scores = [RemoteDomainScore.from_local(d) for d in submission.domain_scores]

    return SubmitExamRequest(
        exam_type_id=submission.exam_type_id,
        score=submission.score,
        passed=submission.passed,
        duration=submission.duration,
        submitted_at=submission.submitted_at,
        local_id=submission.local_id or submission.id,
        domain_scores=domain_scores,
        answers=answers,
    )


class SubmissionPusher:
    """Sends PENDING and FAILED submissions to the remote store."""

    def __init__(
        self,
        db: Database,
        remote: RemoteStore,
        tracker: SubmissionTracker,
        config: SyncConfig,
        sleep: Sleep = asyncio.sleep,
    ):
        self.db = db
        self.remote = remote
        self.tracker = tracker
        self.config = config
        self._sleep = sleep

    def build_request(self, submission: ExamSubmission) -> SubmitExamRequest:
        return build_submit_request(self.db, submission)

    async def push_one(self, submission: ExamSubmission) -> bool:
        """Push one submission and record the outcome on its row.

        Raises:
            RemoteAuthError: If the credential is unusable (row left as is)
        """
        try:
            await self.remote.submit_exam(self.build_request(submission))
        except RemoteAuthError:
            raise
        except RemoteError as e:
            updated = self.tracker.mark_failed(submission.id)
            logger.warning(
                "push.failed",
                submission_id=submission.id,
                retries=updated.sync_retries if updated else None,
                error=str(e),
            )
            return False

        self.tracker.mark_synced(submission.id)
        logger.info("push.synced", submission_id=submission.id, local_id=submission.local_id)
        return True

    async def push_pending(self, attempted: set[str] | None = None) -> PushResult:
        """Push every PENDING submission once."""
        attempted = attempted if attempted is not None else set()
        return await self._push_batch(list_by_status(self.db, SyncStatus.PENDING), attempted)

    async def retry_failed(
        self,
        attempted: set[str] | None = None,
        ignore_ceiling: bool = False,
    ) -> PushResult:
        """Retry FAILED submissions not already tried in this cycle.

        Rows at or past the retry ceiling are skipped unless `ignore_ceiling`.
        Each retry waits for its backoff delay first.
        """
        attempted = attempted if attempted is not None else set()
        result = PushResult()
        candidates = []

        for submission in list_by_status(self.db, SyncStatus.FAILED):
            if submission.id in attempted:
                continue
            if not ignore_ceiling and submission.sync_retries >= self.config.max_retries:
                result.skipped.append(submission.id)
                continue
            candidates.append(submission)

        if result.skipped:
            logger.info("push.retry_ceiling_reached", count=len(result.skipped))

        batch = await self._push_batch(candidates, attempted, backoff=True)
        return result.merge(batch)

    async def _push_batch(
        self,
        submissions: list[ExamSubmission],
        attempted: set[str],
        backoff: bool = False,
    ) -> PushResult:
        result = PushResult()

        for submission in submissions:
            if submission.id in attempted:
                continue

            if backoff:
                delay = retry_delay(
                    submission.sync_retries,
                    self.config.retry_base_delay_seconds,
                    self.config.retry_max_delay_seconds,
                )
                if delay > 0:
                    await self._sleep(delay)

            attempted.add(submission.id)
            try:
                ok = await self.push_one(submission)
            except RemoteAuthError as e:
                logger.warning("push.auth_failed", error=str(e))
                result.errors.append(str(e))
                break
            except sqlite3.Error as e:
                logger.error("push.store_failed", submission_id=submission.id, error=str(e))
                result.errors.append(str(e))
                continue

            (result.synced if ok else result.failed).append(submission.id)

        return result
