"""Pydantic schemas for the Web API.

Serialization models for sync status, merge outcomes, history and review.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from examsync.core.history import HistoryEntry, ReviewDetail
from examsync.core.scoring import DomainScore
from examsync.sync.engine import EngineStatus
from examsync.sync.merge_service import MergeReport


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


# =============================================================================
# SYNC SCHEMAS
# =============================================================================


class SyncStatusResponse(BaseModel):
    """Sync indicators."""

    online: bool
    syncing: bool
    pending: int
    failed: int
    last_sync_at: str | None = None
    last_sync_error: str | None = None

    @classmethod
    def from_status(cls, status: EngineStatus) -> SyncStatusResponse:
        return cls(
            online=status.online,
            syncing=status.syncing,
            pending=status.pending,
            failed=status.failed,
            last_sync_at=status.last_sync_at,
            last_sync_error=status.last_sync_error,
        )


class SyncNowRequest(BaseModel):
    """Request body for a manual sync."""

    retry_failed: bool = False


class SyncNowResponse(BaseModel):
    """Result of a manual sync."""

    started: bool
    synced: int = 0
    failed: int = 0
    over_ceiling: int = 0
    skipped_reason: str | None = None
    error: str | None = None
    status: SyncStatusResponse


class MergeOutcomeResponse(BaseModel):
    operation: str
    ok: bool
    skipped: bool = False
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class PullResponse(BaseModel):
    """Result of a pull-and-merge run."""

    started: bool
    ok: bool = False
    outcomes: list[MergeOutcomeResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: MergeReport | None) -> PullResponse:
        if report is None:
            return cls(started=False)
        return cls(
            started=True,
            ok=report.ok,
            outcomes=[
                MergeOutcomeResponse(
                    operation=o.operation,
                    ok=o.ok,
                    skipped=o.skipped,
                    error=o.error,
                    details=o.details,
                )
                for o in report.outcomes
            ],
        )


# =============================================================================
# HISTORY SCHEMAS
# =============================================================================


class DomainScoreResponse(BaseModel):
    domain_id: str
    correct: int
    total: int
    percentage: int

    @classmethod
    def from_domain_score(cls, score: DomainScore) -> DomainScoreResponse:
        return cls(
            domain_id=score.domain_id,
            correct=score.correct,
            total=score.total,
            percentage=score.percentage,
        )


def _domain_scores(scores: list[DomainScore] | None) -> list[DomainScoreResponse] | None:
    if scores is None:
        return None
    return [DomainScoreResponse.from_domain_score(s) for s in scores]


class HistoryEntryResponse(BaseModel):
    """One entry of the exam history."""

    id: str
    score: float
    passed: bool
    duration: int
    submitted_at: str
    can_review: bool
    attempt_id: str | None = None
    exam_type_id: str | None = None
    sync_status: str | None = None
    domain_scores: list[DomainScoreResponse] | None = None

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> HistoryEntryResponse:
        return cls(
            id=entry.id,
            score=entry.score,
            passed=entry.passed,
            duration=entry.duration,
            submitted_at=entry.submitted_at,
            can_review=entry.can_review,
            attempt_id=entry.attempt_id,
            exam_type_id=entry.exam_type_id,
            sync_status=entry.sync_status,
            domain_scores=_domain_scores(entry.domain_scores),
        )


class HistoryListResponse(BaseModel):
    """Response for the exam history."""

    entries: list[HistoryEntryResponse]
    count: int


class ReviewItemResponse(BaseModel):
    question_id: str
    order_index: int
    selected_answers: list[str]
    is_correct: bool | None = None
    is_flagged: bool = False
    text: str | None = None
    options: list[dict[str, str]] = Field(default_factory=list)
    correct_answers: list[str] = Field(default_factory=list)
    explanation: str | None = None
    domain: str | None = None


class ReviewResponse(BaseModel):
    """Per-question review of one exam."""

    entry_id: str
    attempt_id: str
    score: float | None = None
    passed: bool | None = None
    started_at: str
    completed_at: str | None = None
    items: list[ReviewItemResponse]
    domain_scores: list[DomainScoreResponse] | None = None

    @classmethod
    def from_detail(cls, detail: ReviewDetail) -> ReviewResponse:
        return cls(
            entry_id=detail.entry_id,
            attempt_id=detail.attempt.id,
            score=detail.attempt.score,
            passed=detail.attempt.passed,
            started_at=detail.attempt.started_at,
            completed_at=detail.attempt.completed_at,
            items=[
                ReviewItemResponse(
                    question_id=i.question_id,
                    order_index=i.order_index,
                    selected_answers=i.selected_answers,
                    is_correct=i.is_correct,
                    is_flagged=i.is_flagged,
                    text=i.text,
                    options=i.options,
                    correct_answers=i.correct_answers,
                    explanation=i.explanation,
                    domain=i.domain,
                )
                for i in detail.items
            ],
            domain_scores=_domain_scores(detail.domain_scores),
        )
