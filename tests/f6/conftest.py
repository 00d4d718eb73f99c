"""Fixtures for F6 tests - Web API and CLI."""

import pytest
from fastapi.testclient import TestClient

from examsync.context import AppContext, build_context
from examsync.db.submissions_repository import ExamSubmission, SyncStatus, insert_submission
from examsync.web.api import create_app


@pytest.fixture
def context(app_config, token_provider, http_client) -> AppContext:
    """App context wired to the fake remote store."""
    return build_context(config=app_config, token_provider=token_provider, http_client=http_client)


@pytest.fixture
def client(context) -> TestClient:
    with TestClient(create_app(context)) as test_client:
        yield test_client


@pytest.fixture
def store_submission():
    """Insert a submission row directly."""

    def store(db, submission_id: str, status: SyncStatus = SyncStatus.PENDING, retries: int = 0, **fields):
        values = {
            "exam_type_id": "CLF-C02",
            "score": 80,
            "passed": True,
            "duration": 600,
            "submitted_at": "2024-05-01T10:00:00.000+00:00",
            "created_at": "2024-05-01T10:00:00.000+00:00",
            **fields,
        }
        submission = ExamSubmission(
            id=submission_id,
            local_id=submission_id,
            sync_status=status,
            sync_retries=retries,
            **values,
        )
        insert_submission(db, submission)
        return submission

    return store
