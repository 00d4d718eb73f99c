"""Repository functions for the exam_submissions table.

An ExamSubmission is the canonical, sync-tracked summary of one completed
exam. Rows are append-only from the user's point of view; only sync
bookkeeping (status, retries, synced_at) and a missing domain breakdown
are ever updated in place.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from examsync.core.scoring import DomainScore
from examsync.db.database import Database
from examsync.utils.timestamps import utc_now_iso

logger = structlog.get_logger(__name__)


class SyncStatus(str, Enum):
    """Sync lifecycle of a submission."""

    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"
    LOCAL = "LOCAL"


@dataclass
class ExamSubmission:
    """Submission record from database."""

    id: str
    exam_type_id: str
    score: float
    passed: bool
    duration: int  # seconds
    submitted_at: str
    created_at: str
    sync_status: SyncStatus = SyncStatus.PENDING
    sync_retries: int = 0
    synced_at: str | None = None
    local_id: str | None = None
    domain_scores: list[DomainScore] | None = None
    user_id: str | None = None

    @property
    def attempt_key(self) -> str:
        """Identity under which the owning ExamAttempt and its answers are stored."""
        return self.local_id or self.id


@dataclass
class SubmissionCounts:
    """Per-status row counts for sync indicators."""

    pending: int = 0
    failed: int = 0
    synced: int = 0
    local: int = 0
    by_status: dict[str, int] = field(default_factory=dict)


_COLUMNS = (
    "id, user_id, exam_type_id, score, passed, duration, submitted_at, created_at, "
    "sync_status, sync_retries, synced_at, local_id, domain_scores"
)


def _encode_domain_scores(scores: list[DomainScore] | None) -> str | None:
    if scores is None:
        return None
    return json.dumps([s.to_dict() for s in scores])


def _decode_domain_scores(raw: str | None) -> list[DomainScore] | None:
    if raw is None:
        return None
    return [DomainScore.from_dict(item) for item in json.loads(raw)]


def _row_to_record(row: sqlite3.Row) -> ExamSubmission:
    """Convert database row to ExamSubmission."""
    return ExamSubmission(
        id=row["id"],
        user_id=row["user_id"],
        exam_type_id=row["exam_type_id"],
        score=row["score"],
        passed=bool(row["passed"]),
        duration=row["duration"],
        submitted_at=row["submitted_at"],
        created_at=row["created_at"],
        sync_status=SyncStatus(row["sync_status"]),
        sync_retries=row["sync_retries"],
        synced_at=row["synced_at"],
        local_id=row["local_id"],
        domain_scores=_decode_domain_scores(row["domain_scores"]),
    )


def _record_params(submission: ExamSubmission) -> tuple[Any, ...]:
    return (
        submission.id,
        submission.user_id,
        submission.exam_type_id,
        submission.score,
        1 if submission.passed else 0,
        submission.duration,
        submission.submitted_at,
        submission.created_at,
        submission.sync_status.value,
        submission.sync_retries,
        submission.synced_at,
        submission.local_id,
        _encode_domain_scores(submission.domain_scores),
    )


def insert_submission(db: Database, submission: ExamSubmission) -> bool:
    """Insert a submission unless its id or idempotency key already exists.

    Returns:
        True if a row was written, False if it was ignored as a duplicate
    """
    with db.get_db() as conn:
        cursor = conn.execute(
            f"INSERT OR IGNORE INTO exam_submissions ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            _record_params(submission),
        )
        inserted = cursor.rowcount > 0

    logger.debug(
        "submissions.inserted" if inserted else "submissions.insert_ignored",
        submission_id=submission.id,
        local_id=submission.local_id,
    )
    return inserted


def get_submission(db: Database, submission_id: str) -> ExamSubmission | None:
    """Get submission by primary id."""
    with db.get_db() as conn:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM exam_submissions WHERE id = ?", (submission_id,)
        ).fetchone()

    return _row_to_record(row) if row else None


def get_submission_by_key(db: Database, key: str) -> ExamSubmission | None:
    """Get submission whose id or idempotency key equals key.

    A row matching on id is preferred over one matching on local_id.
    """
    with db.get_db() as conn:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM exam_submissions "
            "WHERE id = ? OR local_id = ? "
            "ORDER BY CASE WHEN id = ? THEN 0 ELSE 1 END LIMIT 1",
            (key, key, key),
        ).fetchone()

    return _row_to_record(row) if row else None


def list_submissions(db: Database) -> list[ExamSubmission]:
    """All submissions, most recent first."""
    with db.get_db() as conn:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM exam_submissions ORDER BY submitted_at DESC, id"
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def list_by_status(db: Database, status: SyncStatus) -> list[ExamSubmission]:
    """Submissions in a sync status, oldest created first."""
    with db.get_db() as conn:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM exam_submissions "
            "WHERE sync_status = ? ORDER BY created_at ASC, id",
            (status.value,),
        ).fetchall()

    return [_row_to_record(row) for row in rows]


def list_composite_candidates(
    db: Database,
    score: float,
    passed: bool,
    exam_type_id: str | None = None,
) -> list[ExamSubmission]:
    """Submissions sharing score and pass flag (and exam type, when given).

    Timestamp proximity is decided by the caller so the matching policy
    stays independent of SQL.
    """
    query = f"SELECT {_COLUMNS} FROM exam_submissions WHERE score = ? AND passed = ?"
    params: list[Any] = [score, 1 if passed else 0]
    if exam_type_id is not None:
        query += " AND exam_type_id = ?"
        params.append(exam_type_id)

    with db.get_db() as conn:
        rows = conn.execute(query + " ORDER BY submitted_at, id", params).fetchall()

    return [_row_to_record(row) for row in rows]


def count_by_status(db: Database) -> SubmissionCounts:
    """Count submissions grouped by sync status."""
    with db.get_db() as conn:
        rows = conn.execute(
            "SELECT sync_status, COUNT(*) AS count FROM exam_submissions GROUP BY sync_status"
        ).fetchall()

    by_status = {row["sync_status"]: row["count"] for row in rows}
    return SubmissionCounts(
        pending=by_status.get(SyncStatus.PENDING.value, 0),
        failed=by_status.get(SyncStatus.FAILED.value, 0),
        synced=by_status.get(SyncStatus.SYNCED.value, 0),
        local=by_status.get(SyncStatus.LOCAL.value, 0),
        by_status=by_status,
    )


def mark_synced(
    db: Database, submission_id: str, synced_at: str | None = None
) -> ExamSubmission | None:
    """Transition a submission to SYNCED and reset its retry counter."""
    with db.get_db() as conn:
        conn.execute(
            "UPDATE exam_submissions "
            "SET sync_status = 'SYNCED', synced_at = ?, sync_retries = 0 "
            "WHERE id = ?",
            (synced_at or utc_now_iso(), submission_id),
        )

    return get_submission(db, submission_id)


def mark_failed(db: Database, submission_id: str) -> ExamSubmission | None:
    """Transition a submission to FAILED and count the attempt."""
    with db.get_db() as conn:
        conn.execute(
            "UPDATE exam_submissions "
            "SET sync_status = 'FAILED', sync_retries = sync_retries + 1 "
            "WHERE id = ?",
            (submission_id,),
        )

    return get_submission(db, submission_id)


def set_domain_scores(
    db: Database,
    submission_id: str,
    scores: list[DomainScore],
    only_if_missing: bool = True,
) -> bool:
    """Store a domain breakdown on a submission.

    Args:
        only_if_missing: Leave an existing breakdown untouched

    Returns:
        True if the row was updated
    """
    query = "UPDATE exam_submissions SET domain_scores = ? WHERE id = ?"
    if only_if_missing:
        query += " AND domain_scores IS NULL"

    with db.get_db() as conn:
        cursor = conn.execute(query, (_encode_domain_scores(scores), submission_id))
        return cursor.rowcount > 0


def delete_submission(db: Database, submission_id: str) -> bool:
    """Delete a submission by id."""
    with db.get_db() as conn:
        cursor = conn.execute("DELETE FROM exam_submissions WHERE id = ?", (submission_id,))
        deleted = cursor.rowcount > 0

    if deleted:
        logger.info("submissions.deleted", submission_id=submission_id)
    return deleted


def delete_keyless_copy(db: Database, submission_id: str) -> bool:
    """Delete a row stored under a server id that never carried an idempotency key."""
    with db.get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM exam_submissions WHERE id = ? AND local_id IS NULL",
            (submission_id,),
        )
        deleted = cursor.rowcount > 0

    if deleted:
        logger.info("submissions.keyless_copy_deleted", submission_id=submission_id)
    return deleted


def adopt_idempotency_key(db: Database, submission_id: str, local_id: str) -> bool:
    """Attach an idempotency key to a row stored without one."""
    with db.get_db() as conn:
        cursor = conn.execute(
            "UPDATE exam_submissions SET local_id = ? WHERE id = ? AND local_id IS NULL",
            (local_id, submission_id),
        )
        adopted = cursor.rowcount > 0

    if adopted:
        logger.info("submissions.key_adopted", submission_id=submission_id, local_id=local_id)
    return adopted
