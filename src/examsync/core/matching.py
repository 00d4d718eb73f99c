"""Two-stage record matching.

A remote exam record is matched to local rows first by exact identity
(server id or idempotency key), then, for records that carry no
idempotency key, by a composite key: same score, same pass flag, same
exam type, and timestamps closer than a tolerance.

The composite policy itself (`CompositeKey.matches`, `select_composite_match`)
is pure and does not touch storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Sequence

from examsync.db.attempts_repository import (
    ExamAttempt,
    get_attempt,
    list_completed_candidates,
)
from examsync.db.database import Database
from examsync.db.submissions_repository import (
    ExamSubmission,
    get_submission_by_key,
    list_composite_candidates,
)
from examsync.utils.timestamps import seconds_between

MatchKind = Literal["id", "local_id", "composite"]


@dataclass(frozen=True)
class CompositeKey:
    """Fields that identify a submission when no idempotency key exists."""

    score: float
    passed: bool
    timestamp: str
    exam_type_id: str | None = None

    def matches(self, other: CompositeKey, tolerance_seconds: float) -> bool:
        """True if both keys describe the same exam within the tolerance.

        Exam type is only compared when both sides know it.
        """
        if self.score != other.score or self.passed != other.passed:
            return False
        if (
            self.exam_type_id is not None
            and other.exam_type_id is not None
            and self.exam_type_id != other.exam_type_id
        ):
            return False
        return seconds_between(self.timestamp, other.timestamp) < tolerance_seconds

    @classmethod
    def for_submission(cls, submission: ExamSubmission) -> CompositeKey:
        return cls(
            score=submission.score,
            passed=submission.passed,
            timestamp=submission.submitted_at,
            exam_type_id=submission.exam_type_id,
        )

    @classmethod
    def for_attempt(cls, attempt: ExamAttempt) -> CompositeKey | None:
        """Composite key of a completed attempt, None while unfinished."""
        if attempt.completed_at is None or attempt.score is None or attempt.passed is None:
            return None
        return cls(score=attempt.score, passed=attempt.passed, timestamp=attempt.completed_at)


@dataclass(frozen=True)
class SubmissionMatch:
    """A local submission found for a remote record, and how it was found."""

    submission: ExamSubmission
    matched_by: MatchKind


def select_composite_match(
    candidates: Iterable[ExamSubmission],
    key: CompositeKey,
    tolerance_seconds: float,
) -> ExamSubmission | None:
    """Pick the candidate closest in time among those matching key."""
    best: ExamSubmission | None = None
    best_delta = 0.0

    for candidate in candidates:
        if not CompositeKey.for_submission(candidate).matches(key, tolerance_seconds):
            continue
        delta = seconds_between(candidate.submitted_at, key.timestamp)
        if best is None or delta < best_delta:
            best, best_delta = candidate, delta

    return best


def select_attempt_match(
    candidates: Sequence[ExamAttempt],
    key: CompositeKey,
    tolerance_seconds: float,
) -> ExamAttempt | None:
    """Pick the completed attempt closest in time among those matching key."""
    best: ExamAttempt | None = None
    best_delta = 0.0

    for candidate in candidates:
        candidate_key = CompositeKey.for_attempt(candidate)
        if candidate_key is None or not candidate_key.matches(key, tolerance_seconds):
            continue
        delta = seconds_between(candidate_key.timestamp, key.timestamp)
        if best is None or delta < best_delta:
            best, best_delta = candidate, delta

    return best


def find_submission_by_idempotency_key(db: Database, key: str) -> SubmissionMatch | None:
    """Exact lookup: a row whose id or local_id equals key."""
    submission = get_submission_by_key(db, key)
    if submission is None:
        return None
    matched_by: MatchKind = "id" if submission.id == key else "local_id"
    return SubmissionMatch(submission=submission, matched_by=matched_by)


def find_submission_by_composite_match(
    db: Database,
    key: CompositeKey,
    tolerance_seconds: float,
) -> SubmissionMatch | None:
    """Fallback lookup for records without an idempotency key."""
    candidates = list_composite_candidates(db, key.score, key.passed, key.exam_type_id)
    submission = select_composite_match(candidates, key, tolerance_seconds)
    if submission is None:
        return None
    return SubmissionMatch(submission=submission, matched_by="composite")


def find_submission_match(
    db: Database,
    match_key: str,
    composite: CompositeKey,
    allow_composite: bool,
    tolerance_seconds: float,
) -> SubmissionMatch | None:
    """Run both stages in order; the composite stage only if allowed."""
    match = find_submission_by_idempotency_key(db, match_key)
    if match is not None or not allow_composite:
        return match
    return find_submission_by_composite_match(db, composite, tolerance_seconds)


def find_attempt_match(
    db: Database,
    attempt_id: str,
    key: CompositeKey,
    tolerance_seconds: float,
) -> ExamAttempt | None:
    """Local attempt for a submission: by id, then by composite key."""
    attempt = get_attempt(db, attempt_id)
    if attempt is not None:
        return attempt

    candidates = list_completed_candidates(db, key.score, key.passed)
    return select_attempt_match(candidates, key, tolerance_seconds)
