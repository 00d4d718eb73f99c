"""Merge Service.

Four independent, idempotent merge operations against the remote store:
- user stats: push local counters / pull and MAX-merge
- study streak: push verbatim / pull and merge by recency
- exam history: paginated pull, inserting only records with no local match
- domain-score backfill: recompute missing breakdowns and re-submit them

Every operation returns a MergeOutcome instead of raising. The combined
`pull_and_merge_all` runs the pulls side by side so one failing pull never
blocks the others.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable

import structlog

from examsync.config.app_config import ExamDomain, SyncConfig
from examsync.core.matching import CompositeKey, find_attempt_match, find_submission_match
from examsync.core.merge_rules import merge_streak, merge_user_stats
from examsync.core.scoring import calculate_domain_breakdown
from examsync.db.attempts_repository import (
    ExamAnswer,
    ExamAttempt,
    get_answers,
    insert_restored_attempt,
)
from examsync.db.database import Database
from examsync.db.questions_repository import get_questions_by_ids
from examsync.db.stats_repository import (
    get_study_streak,
    get_user_stats,
    save_study_streak,
    save_user_stats,
)
from examsync.db.submissions_repository import (
    ExamSubmission,
    SyncStatus,
    adopt_idempotency_key,
    delete_keyless_copy,
    get_submission_by_key,
    insert_submission,
    list_by_status,
    mark_synced,
    set_domain_scores,
)
from examsync.sync.remote import RemoteStore
from examsync.sync.schemas import RemoteExamRecord, RemoteStreak, RemoteUserStats
from examsync.sync.submission_sync import build_submit_request
from examsync.sync.transport import RemoteAuthError, RemoteError
from examsync.utils.timestamps import normalize_timestamp, parse_timestamp, to_iso, utc_now_iso

logger = structlog.get_logger(__name__)

# =============================================================================
# OUTCOMES
# =============================================================================


@dataclass
class MergeOutcome:
    """Result of one merge operation."""

    operation: str
    ok: bool
    skipped: bool = False
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class MergeReport:
    """Outcomes of a combined pull-and-merge run."""

    outcomes: list[MergeOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(o.ok or o.skipped for o in self.outcomes)

    @property
    def errors(self) -> list[str]:
        return [f"{o.operation}: {o.error}" for o in self.outcomes if o.error]

    def get(self, operation: str) -> MergeOutcome | None:
        for outcome in self.outcomes:
            if outcome.operation == operation:
                return outcome
        return None


@dataclass
class HistoryPullStats:
    pages: int = 0
    inserted: int = 0
    matched: int = 0
    removed: int = 0
    backfilled: int = 0
    restored: int = 0
    confirmed: int = 0
    errors: int = 0


# =============================================================================
# MERGE SERVICE
# =============================================================================


class MergeService:
    """Merge operations between the local store and the remote store."""

    def __init__(
        self,
        db: Database,
        remote: RemoteStore,
        config: SyncConfig,
        domains: Iterable[ExamDomain] = (),
    ):
        self.db = db
        self.remote = remote
        self.config = config
        self.domains = list(domains)

    async def _guard(
        self,
        operation: str,
        action: Callable[[], Awaitable[dict[str, Any] | None]],
    ) -> MergeOutcome:
        """Run one operation, converting failures into an outcome."""
        if not self.remote.has_credential:
            logger.debug("merge.skipped_no_credential", operation=operation)
            return MergeOutcome(operation=operation, ok=False, skipped=True, error="not authenticated")

        try:
            details = await action()
        except RemoteError as e:
            logger.warning("merge.failed", operation=operation, error=str(e))
            return MergeOutcome(operation=operation, ok=False, error=str(e))
        except sqlite3.Error as e:
            logger.error("merge.store_failed", operation=operation, error=str(e))
            return MergeOutcome(operation=operation, ok=False, error=f"local store: {e}")
        except ValueError as e:
            logger.warning("merge.invalid_remote_data", operation=operation, error=str(e))
            return MergeOutcome(operation=operation, ok=False, error=f"invalid remote data: {e}")

        logger.info("merge.completed", operation=operation, **(details or {}))
        return MergeOutcome(operation=operation, ok=True, details=details or {})

    # -------------------------------------------------------------------------
    # User stats
    # -------------------------------------------------------------------------

    async def push_user_stats(self) -> MergeOutcome:
        """Send local counters; the server MAX-merges them."""

        async def action():
            await self.remote.put_user_stats(RemoteUserStats.from_local(get_user_stats(self.db)))
            return None

        return await self._guard("push_user_stats", action)

    async def pull_user_stats(self) -> MergeOutcome:
        """Fetch remote counters and MAX-merge them into the local row."""

        async def action():
            remote = await self.remote.get_user_stats()
            # Read local only after the await so increments made meanwhile count
            local = get_user_stats(self.db)
            merged = merge_user_stats(local, remote.to_local())
            changed = merged != local
            if changed:
                save_user_stats(self.db, merged)
            return {"changed": changed}

        return await self._guard("pull_user_stats", action)

    # -------------------------------------------------------------------------
    # Study streak
    # -------------------------------------------------------------------------

    async def push_streak(self) -> MergeOutcome:
        """Send local streak fields verbatim."""

        async def action():
            await self.remote.put_streak(RemoteStreak.from_local(get_study_streak(self.db)))
            return None

        return await self._guard("push_streak", action)

    async def pull_streak(self) -> MergeOutcome:
        """Fetch the remote streak and merge it by recency."""

        async def action():
            remote = await self.remote.get_streak()
            local = get_study_streak(self.db)
            merged = merge_streak(local, remote.to_local())
            changed = merged != local
            if changed:
                save_study_streak(self.db, merged)
            return {"changed": changed}

        return await self._guard("pull_streak", action)

    async def push_all_stats(self) -> list[MergeOutcome]:
        """Push user stats and streak side by side."""
        return list(await asyncio.gather(self.push_user_stats(), self.push_streak()))

    # -------------------------------------------------------------------------
    # Exam history
    # -------------------------------------------------------------------------

    async def pull_exam_history(self) -> MergeOutcome:
        """Fetch every history page and merge each record into the local store.

        Pages are fetched strictly in order. A record that fails to merge
        locally, or carries an unreadable timestamp, is logged and skipped;
        the rest of the page still merges.
        """

        async def action():
            stats = HistoryPullStats()
            page = 1
            total_pages = 1

            while page <= total_pages:
                result = await self.remote.get_history_page(page, self.config.history_page_size)
                total_pages = result.total_pages
                stats.pages += 1

                for record in result.data:
                    try:
                        self.merge_remote_record(record, stats)
                    except sqlite3.Error as e:
                        stats.errors += 1
                        logger.error("merge.history_record_failed", remote_id=record.id, error=str(e))
                    except ValueError as e:
                        stats.errors += 1
                        logger.warning("merge.history_record_invalid", remote_id=record.id, error=str(e))

                page += 1

            return vars(stats)

        return await self._guard("pull_exam_history", action)

    def merge_remote_record(self, record: RemoteExamRecord, stats: HistoryPullStats) -> None:
        """Merge one remote history record (idempotent)."""
        key = record.match_key
        submitted_at = normalize_timestamp(record.submitted_at)
        composite = CompositeKey(
            score=record.score,
            passed=record.passed,
            timestamp=submitted_at,
            exam_type_id=record.exam_type_id,
        )
        tolerance = self.config.composite_match_tolerance_seconds

        match = find_submission_match(
            self.db,
            key,
            composite,
            allow_composite=record.local_id is None,
            tolerance_seconds=tolerance,
        )

        # A copy pulled before the server echoed keys: give it the key
        if match is None and record.local_id and adopt_idempotency_key(self.db, record.id, record.local_id):
            match = find_submission_match(self.db, key, composite, False, tolerance)

        if match is None:
            submission = self._submission_from_remote(record, submitted_at)
            if insert_submission(self.db, submission):
                stats.inserted += 1
            local = get_submission_by_key(self.db, key) or submission
        else:
            stats.matched += 1
            local = match.submission

            if record.local_id and record.id != key and local.id != record.id:
                if delete_keyless_copy(self.db, record.id):
                    stats.removed += 1

            # The server already holds this submission
            if match.matched_by != "composite" and local.sync_status in (
                SyncStatus.PENDING,
                SyncStatus.FAILED,
            ):
                mark_synced(self.db, local.id)
                stats.confirmed += 1

            if record.domain_scores and local.domain_scores is None:
                scores = [d.to_local() for d in record.domain_scores]
                if set_domain_scores(self.db, local.id, scores):
                    stats.backfilled += 1

        if record.answers:
            if self._restore_attempt(record, local, composite):
                stats.restored += 1

    def _submission_from_remote(self, record: RemoteExamRecord, submitted_at: str) -> ExamSubmission:
        now = utc_now_iso()
        return ExamSubmission(
            id=record.id,
            local_id=record.local_id,
            exam_type_id=record.exam_type_id,
            score=record.score,
            passed=record.passed,
            duration=record.duration,
            submitted_at=submitted_at,
            created_at=normalize_timestamp(record.created_at) if record.created_at else now,
            sync_status=SyncStatus.SYNCED,
            synced_at=now,
            domain_scores=[d.to_local() for d in record.domain_scores] if record.domain_scores else None,
        )

    def _restore_attempt(
        self,
        record: RemoteExamRecord,
        local: ExamSubmission,
        composite: CompositeKey,
    ) -> bool:
        """Make a pulled submission reviewable by rebuilding its attempt.

        Returns:
            True if an attempt or its answers were written
        """
        attempt_key = local.attempt_key
        attempt_composite = replace(composite, exam_type_id=None)
        attempt = find_attempt_match(
            self.db,
            attempt_key,
            attempt_composite,
            self.config.composite_match_tolerance_seconds,
        )

        if attempt is not None and get_answers(self.db, attempt.id):
            return False

        if attempt is None:
            completed = parse_timestamp(composite.timestamp)
            attempt = ExamAttempt(
                id=attempt_key,
                started_at=to_iso(completed - timedelta(seconds=record.duration)),
                completed_at=to_iso(completed),
                status="completed",
                score=record.score,
                passed=record.passed,
                total_questions=len(record.answers or []),
                remaining_time_ms=0,
                expires_at=to_iso(completed),
            )

        answers = [
            ExamAnswer(
                exam_attempt_id=attempt.id,
                question_id=a.question_id,
                order_index=a.order_index,
                selected_answers=list(a.selected_answers),
                is_correct=a.is_correct,
                answered_at=attempt.completed_at,
            )
            for a in record.answers or []
        ]
        insert_restored_attempt(self.db, attempt, answers)
        return True

    # -------------------------------------------------------------------------
    # Domain-score backfill
    # -------------------------------------------------------------------------

    async def backfill_domain_scores(self) -> MergeOutcome:
        """Recompute missing breakdowns of SYNCED submissions and re-submit them.

        Submissions whose answers were never kept locally are skipped.
        """

        async def action():
            backfilled = 0
            skipped = 0
            failed = 0

            for submission in list_by_status(self.db, SyncStatus.SYNCED):
                if submission.domain_scores is not None:
                    continue

                answers = get_answers(self.db, submission.attempt_key)
                questions = get_questions_by_ids(self.db, [a.question_id for a in answers])
                breakdown = calculate_domain_breakdown(answers, questions, self.domains)
                if not breakdown:
                    skipped += 1
                    continue

                updated = replace(submission, domain_scores=breakdown)
                try:
                    await self.remote.submit_exam(build_submit_request(self.db, updated))
                except RemoteAuthError:
                    raise
                except RemoteError as e:
                    failed += 1
                    logger.warning("merge.backfill_submit_failed", submission_id=submission.id, error=str(e))
                    continue

                set_domain_scores(self.db, submission.id, breakdown)
                backfilled += 1

            if failed:
                raise RemoteError(f"{failed} domain-score re-submissions failed")
            return {"backfilled": backfilled, "skipped": skipped}

        return await self._guard("backfill_domain_scores", action)

    # -------------------------------------------------------------------------
    # Combined entry point
    # -------------------------------------------------------------------------

    async def pull_and_merge_all(self) -> MergeReport:
        """Run every pull, then the backfill. Always resolves.

        The three pulls run concurrently and fail independently; the
        backfill runs after the history pull so it sees pulled rows.
        """
        operations = ("pull_user_stats", "pull_streak", "pull_exam_history")
        results = await asyncio.gather(
            self.pull_user_stats(),
            self.pull_streak(),
            self.pull_exam_history(),
            return_exceptions=True,
        )

        report = MergeReport()
        for operation, result in zip(operations, results):
            if isinstance(result, BaseException):
                logger.warning("merge.unexpected_failure", operation=operation, error=repr(result))
                result = MergeOutcome(operation=operation, ok=False, error=repr(result))
            report.outcomes.append(result)

        try:
            report.outcomes.append(await self.backfill_domain_scores())
        except Exception as e:
            logger.warning("merge.unexpected_failure", operation="backfill_domain_scores", error=repr(e))
            report.outcomes.append(
                MergeOutcome(operation="backfill_domain_scores", ok=False, error=repr(e))
            )

        logger.info("merge.pull_all_completed", ok=report.ok, errors=len(report.errors))
        return report
