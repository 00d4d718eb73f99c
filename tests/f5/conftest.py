"""Fixtures for F5 tests - sync engine and connectivity."""

import pytest

from examsync.core.submission_tracker import ExamSummary, SubmissionTracker
from examsync.sync.engine import SyncEngine
from examsync.sync.merge_service import MergeService


@pytest.fixture
def tracker(db) -> SubmissionTracker:
    return SubmissionTracker(db)


@pytest.fixture
def engine(db, remote, sync_config, tracker, exam_config) -> SyncEngine:
    merge_service = MergeService(db, remote, sync_config, domains=exam_config.domains)
    return SyncEngine(db, remote, sync_config, tracker=tracker, merge_service=merge_service)


@pytest.fixture
def summary():
    """Factory for finished-exam summaries."""

    def make(attempt_id: str, score: float = 80, passed: bool = True) -> ExamSummary:
        return ExamSummary(
            exam_type_id="CLF-C02",
            score=score,
            passed=passed,
            duration=600,
            submitted_at="2024-05-01T10:00:00.000+00:00",
            attempt_id=attempt_id,
        )

    return make
