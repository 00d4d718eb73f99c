"""Application wiring.

Builds the object graph for one app session from configuration. Nothing
here is a module-level singleton; callers own the returned context.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from examsync.config.app_config import AppConfig, load_app_config
from examsync.core.completion import ExamCompletionService
from examsync.core.history import HistoryReconciler
from examsync.core.submission_tracker import SubmissionTracker
from examsync.db.database import Database
from examsync.db.stats_repository import validate_streak
from examsync.sync.connectivity import ConnectivityMonitor
from examsync.sync.engine import SyncEngine
from examsync.sync.merge_service import MergeService
from examsync.sync.remote import RemoteStore
from examsync.sync.submission_sync import Sleep
from examsync.sync.transport import AuthenticatedTransport, StaticTokenProvider, TokenProvider
from examsync.utils.timestamps import today_iso

logger = structlog.get_logger(__name__)


@dataclass
class AppContext:
    """Everything one app session needs."""

    config: AppConfig
    db: Database
    transport: AuthenticatedTransport
    remote: RemoteStore
    tracker: SubmissionTracker
    completion: ExamCompletionService
    merge_service: MergeService
    engine: SyncEngine
    history: HistoryReconciler
    monitor: ConnectivityMonitor

    async def aclose(self) -> None:
        """Stop background work and release the HTTP client."""
        await self.monitor.stop()
        await self.engine.stop()
        await self.transport.aclose()


def build_context(
    config: AppConfig | None = None,
    db_path: Path | str | None = None,
    token_provider: TokenProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
    sleep: Sleep = asyncio.sleep,
) -> AppContext:
    """Create and wire an AppContext.

    Args:
        config: App configuration (loads from YAML if not provided)
        db_path: Override the configured database path
        token_provider: Credential source (defaults to the configured env var)
        http_client: Preconfigured HTTP client, e.g. with a MockTransport
        sleep: Awaitable sleep used between retries
    """
    if config is None:
        config = load_app_config()

    db = Database(db_path if db_path is not None else config.db_path)
    db.init_db()
    validate_streak(db, today_iso())

    if token_provider is None:
        token_provider = StaticTokenProvider(config.api.get_access_token())

    transport = AuthenticatedTransport(
        base_url=config.api.base_url,
        token_provider=token_provider,
        timeout=config.api.timeout_seconds,
        client=http_client,
    )
    remote = RemoteStore(transport, exam_type_id=config.exam.exam_type_id)

    tracker = SubmissionTracker(db)
    merge_service = MergeService(db, remote, config.sync, domains=config.exam.domains)
    engine = SyncEngine(db, remote, config.sync, tracker=tracker, merge_service=merge_service, sleep=sleep)

    logger.debug("context.built", db_path=str(db.db_path), base_url=config.api.base_url)

    return AppContext(
        config=config,
        db=db,
        transport=transport,
        remote=remote,
        tracker=tracker,
        completion=ExamCompletionService(db, tracker, config.exam),
        merge_service=merge_service,
        engine=engine,
        history=HistoryReconciler(
            db,
            orphan_window_seconds=config.sync.orphan_match_window_seconds,
            composite_tolerance_seconds=config.sync.composite_match_tolerance_seconds,
        ),
        monitor=ConnectivityMonitor(remote, engine, config.sync),
    )
