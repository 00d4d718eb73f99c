"""Repository functions for exam_attempts and exam_answers.

An ExamAttempt is the detail-rich, local record of one exam session.
Answers are owned by their attempt and deleted with it.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Literal

import structlog

from examsync.db.database import Database
from examsync.utils.timestamps import parse_timestamp, to_iso, utc_now_iso

logger = structlog.get_logger(__name__)

AttemptStatus = Literal["in-progress", "completed", "abandoned"]


@dataclass
class ExamAnswer:
    """A single answer inside an exam attempt."""

    exam_attempt_id: str
    question_id: str
    order_index: int
    selected_answers: list[str] = field(default_factory=list)
    is_correct: bool | None = None
    is_flagged: bool = False
    answered_at: str | None = None
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = f"{self.exam_attempt_id}:{self.question_id}"


@dataclass
class ExamAttempt:
    """An exam session, in progress or finished."""

    id: str
    started_at: str
    status: AttemptStatus
    total_questions: int
    remaining_time_ms: int
    expires_at: str
    completed_at: str | None = None
    score: float | None = None
    passed: bool | None = None

    @property
    def duration_seconds(self) -> int:
        """Wall-clock seconds between start and completion (0 while unfinished)."""
        if self.completed_at is None:
            return 0
        elapsed = parse_timestamp(self.completed_at) - parse_timestamp(self.started_at)
        return max(0, round(elapsed.total_seconds()))


class ActiveAttemptExistsError(Exception):
    """Another attempt is already in progress."""

    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Exam attempt already in progress: {attempt_id}")


class AttemptNotFoundError(Exception):
    """No attempt with the given id."""

    pass


_ATTEMPT_COLUMNS = (
    "id, started_at, completed_at, status, score, passed, "
    "total_questions, remaining_time_ms, expires_at"
)
_ANSWER_COLUMNS = (
    "id, exam_attempt_id, question_id, selected_answers, is_correct, "
    "is_flagged, order_index, answered_at"
)


def _row_to_attempt(row: sqlite3.Row) -> ExamAttempt:
    passed = row["passed"]
    return ExamAttempt(
        id=row["id"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        status=row["status"],
        score=row["score"],
        passed=None if passed is None else bool(passed),
        total_questions=row["total_questions"],
        remaining_time_ms=row["remaining_time_ms"],
        expires_at=row["expires_at"],
    )


def _row_to_answer(row: sqlite3.Row) -> ExamAnswer:
    is_correct = row["is_correct"]
    return ExamAnswer(
        id=row["id"],
        exam_attempt_id=row["exam_attempt_id"],
        question_id=row["question_id"],
        selected_answers=json.loads(row["selected_answers"]),
        is_correct=None if is_correct is None else bool(is_correct),
        is_flagged=bool(row["is_flagged"]),
        order_index=row["order_index"],
        answered_at=row["answered_at"],
    )


def _attempt_params(attempt: ExamAttempt) -> tuple[Any, ...]:
    return (
        attempt.id,
        attempt.started_at,
        attempt.completed_at,
        attempt.status,
        attempt.score,
        None if attempt.passed is None else (1 if attempt.passed else 0),
        attempt.total_questions,
        attempt.remaining_time_ms,
        attempt.expires_at,
    )


def _answer_params(answer: ExamAnswer) -> tuple[Any, ...]:
    return (
        answer.id,
        answer.exam_attempt_id,
        answer.question_id,
        json.dumps(answer.selected_answers),
        None if answer.is_correct is None else (1 if answer.is_correct else 0),
        1 if answer.is_flagged else 0,
        answer.order_index,
        answer.answered_at,
    )


# =============================================================================
# ATTEMPTS
# =============================================================================


def create_attempt(
    db: Database,
    total_questions: int,
    time_limit_ms: int,
    attempt_id: str | None = None,
    started_at: str | None = None,
) -> ExamAttempt:
    """Start a new in-progress attempt.

    Raises:
        ActiveAttemptExistsError: If another attempt is still in progress
    """
    active = get_in_progress_attempt(db)
    if active is not None:
        raise ActiveAttemptExistsError(active.id)

    started = started_at or utc_now_iso()
    attempt = ExamAttempt(
        id=attempt_id or str(uuid.uuid4()),
        started_at=started,
        status="in-progress",
        total_questions=total_questions,
        remaining_time_ms=time_limit_ms,
        expires_at=to_iso(parse_timestamp(started) + timedelta(milliseconds=time_limit_ms)),
    )

    try:
        with db.get_db() as conn:
            conn.execute(
                f"INSERT INTO exam_attempts ({_ATTEMPT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _attempt_params(attempt),
            )
    except sqlite3.IntegrityError:
        # Lost a race against another start; report the winner
        active = get_in_progress_attempt(db)
        if active is not None:
            raise ActiveAttemptExistsError(active.id) from None
        raise

    logger.info("attempts.started", attempt_id=attempt.id, total_questions=total_questions)
    return attempt


def get_attempt(db: Database, attempt_id: str) -> ExamAttempt | None:
    """Get attempt by id."""
    with db.get_db() as conn:
        row = conn.execute(
            f"SELECT {_ATTEMPT_COLUMNS} FROM exam_attempts WHERE id = ?", (attempt_id,)
        ).fetchone()

    return _row_to_attempt(row) if row else None


def get_in_progress_attempt(db: Database) -> ExamAttempt | None:
    """The single in-progress attempt, if any."""
    with db.get_db() as conn:
        row = conn.execute(
            f"SELECT {_ATTEMPT_COLUMNS} FROM exam_attempts WHERE status = 'in-progress'"
        ).fetchone()

    return _row_to_attempt(row) if row else None


def list_completed_attempts(db: Database) -> list[ExamAttempt]:
    """Completed attempts, most recent first."""
    with db.get_db() as conn:
        rows = conn.execute(
            f"SELECT {_ATTEMPT_COLUMNS} FROM exam_attempts "
            "WHERE status = 'completed' ORDER BY completed_at DESC, id"
        ).fetchall()

    return [_row_to_attempt(row) for row in rows]


def list_completed_candidates(db: Database, score: float, passed: bool) -> list[ExamAttempt]:
    """Completed attempts sharing score and pass flag."""
    with db.get_db() as conn:
        rows = conn.execute(
            f"SELECT {_ATTEMPT_COLUMNS} FROM exam_attempts "
            "WHERE status = 'completed' AND score = ? AND passed = ? "
            "ORDER BY completed_at, id",
            (score, 1 if passed else 0),
        ).fetchall()

    return [_row_to_attempt(row) for row in rows]


def update_remaining_time(db: Database, attempt_id: str, remaining_time_ms: int) -> None:
    """Persist the timer budget of an in-progress attempt."""
    with db.get_db() as conn:
        conn.execute(
            "UPDATE exam_attempts SET remaining_time_ms = ? "
            "WHERE id = ? AND status = 'in-progress'",
            (max(0, remaining_time_ms), attempt_id),
        )


def complete_attempt(
    db: Database,
    attempt_id: str,
    score: float,
    passed: bool,
    completed_at: str | None = None,
) -> ExamAttempt:
    """Finish an in-progress attempt with its result.

    Raises:
        AttemptNotFoundError: If no in-progress attempt has this id
    """
    with db.get_db() as conn:
        cursor = conn.execute(
            "UPDATE exam_attempts "
            "SET status = 'completed', score = ?, passed = ?, completed_at = ? "
            "WHERE id = ? AND status = 'in-progress'",
            (score, 1 if passed else 0, completed_at or utc_now_iso(), attempt_id),
        )
        if cursor.rowcount == 0:
            raise AttemptNotFoundError(f"No in-progress exam attempt: {attempt_id}")

    attempt = get_attempt(db, attempt_id)
    assert attempt is not None
    logger.info("attempts.completed", attempt_id=attempt_id, score=score, passed=passed)
    return attempt


def abandon_attempt(db: Database, attempt_id: str) -> bool:
    """Mark an in-progress attempt abandoned. Returns False if none matched."""
    with db.get_db() as conn:
        cursor = conn.execute(
            "UPDATE exam_attempts SET status = 'abandoned', completed_at = ? "
            "WHERE id = ? AND status = 'in-progress'",
            (utc_now_iso(), attempt_id),
        )
        abandoned = cursor.rowcount > 0

    if abandoned:
        logger.info("attempts.abandoned", attempt_id=attempt_id)
    return abandoned


def delete_attempt(db: Database, attempt_id: str) -> bool:
    """Delete an attempt and, by cascade, its answers."""
    with db.get_db() as conn:
        cursor = conn.execute("DELETE FROM exam_attempts WHERE id = ?", (attempt_id,))
        deleted = cursor.rowcount > 0

    if deleted:
        logger.info("attempts.deleted", attempt_id=attempt_id)
    return deleted


def insert_restored_attempt(
    db: Database,
    attempt: ExamAttempt,
    answers: list[ExamAnswer],
) -> bool:
    """Insert a completed attempt rebuilt from remote data, with its answers.

    Attempt and answers are written in one transaction. Existing rows are
    left untouched; answers are only added when the attempt has none.

    Returns:
        True if the attempt row was new
    """
    with db.get_db() as conn:
        cursor = conn.execute(
            f"INSERT OR IGNORE INTO exam_attempts ({_ATTEMPT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            _attempt_params(attempt),
        )
        inserted = cursor.rowcount > 0

        existing = conn.execute(
            "SELECT COUNT(*) AS count FROM exam_answers WHERE exam_attempt_id = ?",
            (attempt.id,),
        ).fetchone()["count"]
        if existing == 0:
            conn.executemany(
                f"INSERT OR IGNORE INTO exam_answers ({_ANSWER_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                [_answer_params(a) for a in answers],
            )

    logger.debug(
        "attempts.restored",
        attempt_id=attempt.id,
        inserted=inserted,
        answers=len(answers) if existing == 0 else 0,
    )
    return inserted


# =============================================================================
# ANSWERS
# =============================================================================


def save_answer(db: Database, answer: ExamAnswer) -> ExamAnswer:
    """Insert or replace the answer to one question of an in-progress attempt.

    Raises:
        AttemptNotFoundError: If the attempt is not in progress
    """
    attempt = get_attempt(db, answer.exam_attempt_id)
    if attempt is None or attempt.status != "in-progress":
        raise AttemptNotFoundError(f"No in-progress exam attempt: {answer.exam_attempt_id}")

    if answer.answered_at is None:
        answer.answered_at = utc_now_iso()

    with db.get_db() as conn:
        conn.execute(
            f"INSERT INTO exam_answers ({_ANSWER_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(exam_attempt_id, question_id) DO UPDATE SET "
            "selected_answers = excluded.selected_answers, "
            "is_correct = excluded.is_correct, "
            "is_flagged = excluded.is_flagged, "
            "answered_at = excluded.answered_at",
            _answer_params(answer),
        )

    return answer


def get_answers(db: Database, attempt_id: str) -> list[ExamAnswer]:
    """Answers of an attempt in exam order."""
    with db.get_db() as conn:
        rows = conn.execute(
            f"SELECT {_ANSWER_COLUMNS} FROM exam_answers "
            "WHERE exam_attempt_id = ? ORDER BY order_index",
            (attempt_id,),
        ).fetchall()

    return [_row_to_answer(row) for row in rows]


def count_answers(db: Database, attempt_id: str) -> int:
    """Number of stored answers for an attempt."""
    with db.get_db() as conn:
        row = conn.execute(
            "SELECT COUNT(*) AS count FROM exam_answers WHERE exam_attempt_id = ?",
            (attempt_id,),
        ).fetchone()

    return row["count"]


def count_answers_by_attempt(db: Database) -> dict[str, int]:
    """Stored answer counts keyed by attempt id (attempts without answers absent)."""
    with db.get_db() as conn:
        rows = conn.execute(
            "SELECT exam_attempt_id, COUNT(*) AS count FROM exam_answers GROUP BY exam_attempt_id"
        ).fetchall()

    return {row["exam_attempt_id"]: row["count"] for row in rows}
