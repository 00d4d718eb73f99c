"""Sync Orchestrator.

SyncEngine owns the sync state of one app session: whether the device is
online, whether a cycle is running, and the background tasks a cycle
spawns. Network transitions, timer ticks and user triggers arrive as
method calls.

A cycle, in order:
1. push every PENDING submission
2. retry FAILED submissions not tried in this cycle (backoff, retry ceiling)
3. push user stats and streak as an observable background task

At most one cycle runs at a time; a trigger during a cycle is a no-op.
Failures are logged and recorded as the last sync error, never raised.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from examsync.config.app_config import SyncConfig
from examsync.core.submission_tracker import SubmissionTracker
from examsync.db.database import Database
from examsync.db.submissions_repository import ExamSubmission
from examsync.db.sync_meta_repository import LAST_SYNC_AT, LAST_SYNC_ERROR, get_meta, set_meta
from examsync.sync.merge_service import MergeOutcome, MergeReport, MergeService
from examsync.sync.remote import RemoteStore
from examsync.sync.submission_sync import PushResult, Sleep, SubmissionPusher
from examsync.utils.timestamps import utc_now_iso

logger = structlog.get_logger(__name__)


@dataclass
class SyncCycleResult:
    """What one sync cycle did."""

    started_at: str
    finished_at: str | None = None
    pushed: PushResult = field(default_factory=PushResult)
    retried: PushResult = field(default_factory=PushResult)
    skipped_reason: str | None = None
    error: str | None = None
    stats_task: asyncio.Task | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EngineStatus:
    """Sync indicators for the UI."""

    online: bool
    syncing: bool
    pending: int
    failed: int
    last_sync_at: str | None
    last_sync_error: str | None


class SyncEngine:
    """Drives push cycles and pulls for one app session."""

    def __init__(
        self,
        db: Database,
        remote: RemoteStore,
        config: SyncConfig,
        tracker: SubmissionTracker | None = None,
        merge_service: MergeService | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.db = db
        self.remote = remote
        self.config = config
        self.tracker = tracker or SubmissionTracker(db)
        self.merge_service = merge_service or MergeService(db, remote, config)
        self.pusher = SubmissionPusher(db, remote, self.tracker, config, sleep=sleep)

        self._online = True
        self._syncing = False
        self._pulling = False
        self._timer_task: asyncio.Task | None = None
        self.background_tasks: set[asyncio.Task] = set()
        self.last_result: SyncCycleResult | None = None

        self.tracker.add_listener(self.notify_submission_recorded)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def status(self) -> EngineStatus:
        counts = self.tracker.counts()
        return EngineStatus(
            online=self._online,
            syncing=self._syncing,
            pending=counts.pending,
            failed=counts.failed,
            last_sync_at=get_meta(self.db, LAST_SYNC_AT),
            last_sync_error=get_meta(self.db, LAST_SYNC_ERROR),
        )

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    async def sync_now(self, retry_failed: bool = False) -> SyncCycleResult | None:
        """Run one cycle now.

        Args:
            retry_failed: Manual retry; FAILED rows past the ceiling are retried too

        Returns:
            The cycle result, or None if a cycle was already running
        """
        if self._syncing:
            logger.debug("sync.already_running")
            return None

        self._syncing = True
        result = SyncCycleResult(started_at=utc_now_iso())
        try:
            await self._run_cycle(result, retry_failed)
        except Exception as e:
            result.error = str(e) or type(e).__name__
            logger.error("sync.cycle_failed", error=result.error)
        finally:
            result.finished_at = utc_now_iso()
            self._syncing = False

        self._record(result)
        self.last_result = result
        return result

    async def on_connectivity_change(self, online: bool) -> SyncCycleResult | None:
        """Deliver a network transition; going online starts a cycle."""
        was_online = self._online
        self._online = online
        logger.info("sync.connectivity_changed", online=online)

        if online and not was_online:
            return await self.sync_now()
        return None

    async def resume(self) -> SyncCycleResult | None:
        """Session start while online: push work left from an earlier session."""
        counts = self.tracker.counts()
        if not self._online or not (counts.pending or counts.failed):
            return None
        return await self.sync_now()

    async def on_timer_tick(self) -> SyncCycleResult | None:
        """Periodic trigger: only syncs when enabled, online and idle."""
        if not self.config.auto_sync_enabled or not self._online or self._syncing:
            return None
        return await self.sync_now()

    def notify_submission_recorded(self, submission: ExamSubmission) -> None:
        """Tracker listener: schedule a cycle for a newly recorded submission."""
        if not self._online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (e.g. CLI); the next trigger picks the row up
            return
        self._spawn(loop.create_task(self.sync_now()), "sync_after_completion")
        logger.debug("sync.scheduled", local_id=submission.local_id)

    async def pull_now(self) -> MergeReport | None:
        """Pull and merge all remote state (login, app resume)."""
        if self._pulling:
            logger.debug("sync.pull_already_running")
            return None

        self._pulling = True
        try:
            report = await self.merge_service.pull_and_merge_all()
        finally:
            self._pulling = False

        if report.errors:
            set_meta(self.db, LAST_SYNC_ERROR, "; ".join(report.errors))
        return report

    # =========================================================================
    # TIMER
    # =========================================================================

    def start(self) -> None:
        """Start the periodic timer."""
        if self._timer_task is not None and not self._timer_task.done():
            return
        self._timer_task = asyncio.get_running_loop().create_task(self._timer_loop())
        logger.info("sync.timer_started", interval=self.config.auto_sync_interval_seconds)

    async def stop(self) -> None:
        """Stop the timer and wait for background work to finish."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
        await self.wait_for_background()
        logger.info("sync.stopped")

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.auto_sync_interval_seconds)
            await self.on_timer_tick()

    # =========================================================================
    # BACKGROUND TASKS
    # =========================================================================

    async def wait_for_background(self) -> list[object]:
        """Await every outstanding background task; returns their results."""
        results: list[object] = []
        while self.background_tasks:
            pending = list(self.background_tasks)
            results.extend(await asyncio.gather(*pending, return_exceptions=True))
            self.background_tasks.difference_update(pending)
        return results

    def _spawn(self, task: asyncio.Task, name: str) -> asyncio.Task:
        self.background_tasks.add(task)
        task.add_done_callback(lambda t: self._on_background_done(t, name))
        return task

    def _on_background_done(self, task: asyncio.Task, name: str) -> None:
        self.background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("sync.background_failed", task=name, error=str(error))
            return
        result = task.result()
        if isinstance(result, list):
            for outcome in result:
                if isinstance(outcome, MergeOutcome) and outcome.error and not outcome.skipped:
                    logger.warning("sync.stats_push_failed", operation=outcome.operation, error=outcome.error)

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def _run_cycle(self, result: SyncCycleResult, retry_failed: bool) -> None:
        if not self.remote.has_credential:
            result.skipped_reason = "not authenticated"
            logger.info("sync.skipped", reason=result.skipped_reason)
            return

        logger.info("sync.cycle_started", retry_failed=retry_failed)
        attempted: set[str] = set()

        result.pushed = await self.pusher.push_pending(attempted)
        result.retried = await self.pusher.retry_failed(attempted, ignore_ceiling=retry_failed)

        loop = asyncio.get_running_loop()
        result.stats_task = self._spawn(
            loop.create_task(self.merge_service.push_all_stats()), "push_all_stats"
        )

        errors = result.pushed.errors + result.retried.errors
        failed = len(result.pushed.failed) + len(result.retried.failed)
        if errors:
            result.error = "; ".join(errors)
        elif failed:
            result.error = f"{failed} submission(s) failed to sync"

        logger.info(
            "sync.cycle_completed",
            synced=len(result.pushed.synced) + len(result.retried.synced),
            failed=failed,
            over_ceiling=len(result.retried.skipped),
        )

    def _record(self, result: SyncCycleResult) -> None:
        if result.skipped_reason is not None:
            return
        try:
            set_meta(self.db, LAST_SYNC_AT, result.finished_at)
            set_meta(self.db, LAST_SYNC_ERROR, result.error)
        except Exception as e:
            logger.error("sync.meta_write_failed", error=str(e))
