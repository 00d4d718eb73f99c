"""Pydantic wire models for the remote store.

The server speaks camelCase JSON; models accept both camelCase and
snake_case input and serialize with camelCase aliases.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from examsync.core.scoring import DomainScore
from examsync.db.stats_repository import StudyStreak, UserStats

WIRE_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


class WireModel(BaseModel):
    """Base for camelCase wire models."""

    model_config = WIRE_CONFIG

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# AGGREGATES
# =============================================================================


class RemoteUserStats(WireModel):
    total_exams: int = 0
    total_practice: int = 0
    total_questions: int = 0
    total_time_spent_ms: int = 0
    last_activity_at: str | None = None

    @classmethod
    def from_local(cls, stats: UserStats) -> RemoteUserStats:
        return cls(
            total_exams=stats.total_exams,
            total_practice=stats.total_practice,
            total_questions=stats.total_questions,
            total_time_spent_ms=stats.total_time_spent_ms,
            last_activity_at=stats.last_activity_at,
        )

    def to_local(self) -> UserStats:
        return UserStats(
            total_exams=self.total_exams,
            total_practice=self.total_practice,
            total_questions=self.total_questions,
            total_time_spent_ms=self.total_time_spent_ms,
            last_activity_at=self.last_activity_at,
        )


class RemoteStreak(WireModel):
    current_streak: int = 0
    longest_streak: int = 0
    last_completion_date: str | None = None
    exam_date: str | None = None

    @classmethod
    def from_local(cls, streak: StudyStreak) -> RemoteStreak:
        return cls(
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            last_completion_date=streak.last_completion_date,
            exam_date=streak.exam_date,
        )

    def to_local(self) -> StudyStreak:
        # Server dates may carry a time part; streak days are calendar dates
        return StudyStreak(
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            last_completion_date=self.last_completion_date[:10] if self.last_completion_date else None,
            exam_date=self.exam_date[:10] if self.exam_date else None,
        )

    def to_wire(self) -> dict[str, Any]:
        # Streak fields are sent verbatim, nulls included
        return self.model_dump(by_alias=True)


# =============================================================================
# EXAM HISTORY
# =============================================================================


class RemoteDomainScore(WireModel):
    domain_id: str
    correct: int = 0
    total: int = 0

    @classmethod
    def from_local(cls, score: DomainScore) -> RemoteDomainScore:
        return cls(domain_id=score.domain_id, correct=score.correct, total=score.total)

    def to_local(self) -> DomainScore:
        return DomainScore(domain_id=self.domain_id, correct=self.correct, total=self.total)


class RemoteAnswer(WireModel):
    question_id: str
    selected_answers: list[str] = Field(default_factory=list)
    is_correct: bool | None = None
    order_index: int = 0


class RemoteExamRecord(WireModel):
    """One submission as listed in the remote history."""

    id: str
    exam_type_id: str
    score: float
    passed: bool
    duration: int = 0
    submitted_at: str
    created_at: str | None = None
    local_id: str | None = None
    domain_scores: list[RemoteDomainScore] | None = None
    answers: list[RemoteAnswer] | None = None

    @property
    def match_key(self) -> str:
        """Idempotency key if the server echoed one, else the server id."""
        return self.local_id or self.id


class RemoteHistoryPage(WireModel):
    data: list[RemoteExamRecord] = Field(default_factory=list)
    total_pages: int = 1
    page: int | None = None
    total: int | None = None


class SubmitExamRequest(WireModel):
    """Body of an exam submission; idempotent on local_id."""

    exam_type_id: str
    score: float
    passed: bool
    duration: int
    submitted_at: str
    local_id: str
    domain_scores: list[RemoteDomainScore] | None = None
    answers: list[RemoteAnswer] | None = None
