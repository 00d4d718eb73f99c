"""Repository functions for the user_stats and study_streak singletons.

Both tables hold exactly one row (id = 1), created with the schema.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from examsync.db.database import Database
from examsync.utils.timestamps import previous_day, utc_now_iso

logger = structlog.get_logger(__name__)


@dataclass
class UserStats:
    """Aggregate activity counters. All counters only ever grow."""

    total_exams: int = 0
    total_practice: int = 0
    total_questions: int = 0
    total_time_spent_ms: int = 0
    last_activity_at: str | None = None


@dataclass
class StudyStreak:
    """Consecutive-day study streak."""

    current_streak: int = 0
    longest_streak: int = 0
    last_completion_date: str | None = None  # YYYY-MM-DD
    exam_date: str | None = None  # target exam date, YYYY-MM-DD


# =============================================================================
# USER STATS
# =============================================================================


def get_user_stats(db: Database) -> UserStats:
    """Get the singleton stats row."""
    with db.get_db() as conn:
        row = conn.execute("SELECT * FROM user_stats WHERE id = 1").fetchone()

    if row is None:
        return UserStats()

    return UserStats(
        total_exams=row["total_exams"],
        total_practice=row["total_practice"],
        total_questions=row["total_questions"],
        total_time_spent_ms=row["total_time_spent_ms"],
        last_activity_at=row["last_activity_at"],
    )


def save_user_stats(db: Database, stats: UserStats) -> None:
    """Overwrite the singleton stats row."""
    with db.get_db() as conn:
        conn.execute(
            """
            UPDATE user_stats
               SET total_exams = ?, total_practice = ?, total_questions = ?,
                   total_time_spent_ms = ?, last_activity_at = ?
             WHERE id = 1
            """,
            (
                stats.total_exams,
                stats.total_practice,
                stats.total_questions,
                stats.total_time_spent_ms,
                stats.last_activity_at,
            ),
        )


def increment_exam_count(
    db: Database,
    time_spent_ms: int,
    questions_count: int,
    activity_at: str | None = None,
) -> None:
    """Count one completed exam."""
    with db.get_db() as conn:
        conn.execute(
            """
            UPDATE user_stats
               SET total_exams = total_exams + 1,
                   total_questions = total_questions + ?,
                   total_time_spent_ms = total_time_spent_ms + ?,
                   last_activity_at = ?
             WHERE id = 1
            """,
            (max(0, questions_count), max(0, time_spent_ms), activity_at or utc_now_iso()),
        )

    logger.debug("stats.exam_counted", questions=questions_count, time_spent_ms=time_spent_ms)


def increment_practice_count(
    db: Database,
    questions_count: int,
    time_spent_ms: int,
    activity_at: str | None = None,
) -> None:
    """Count one completed practice session."""
    with db.get_db() as conn:
        conn.execute(
            """
            UPDATE user_stats
               SET total_practice = total_practice + 1,
                   total_questions = total_questions + ?,
                   total_time_spent_ms = total_time_spent_ms + ?,
                   last_activity_at = ?
             WHERE id = 1
            """,
            (max(0, questions_count), max(0, time_spent_ms), activity_at or utc_now_iso()),
        )

    logger.debug("stats.practice_counted", questions=questions_count, time_spent_ms=time_spent_ms)


# =============================================================================
# STUDY STREAK
# =============================================================================


def get_study_streak(db: Database) -> StudyStreak:
    """Get the singleton streak row."""
    with db.get_db() as conn:
        row = conn.execute("SELECT * FROM study_streak WHERE id = 1").fetchone()

    if row is None:
        return StudyStreak()

    return StudyStreak(
        current_streak=row["current_streak"],
        longest_streak=row["longest_streak"],
        last_completion_date=row["last_completion_date"],
        exam_date=row["exam_date"],
    )


def save_study_streak(db: Database, streak: StudyStreak) -> None:
    """Overwrite the singleton streak row."""
    with db.get_db() as conn:
        conn.execute(
            """
            UPDATE study_streak
               SET current_streak = ?, longest_streak = ?,
                   last_completion_date = ?, exam_date = ?
             WHERE id = 1
            """,
            (
                streak.current_streak,
                streak.longest_streak,
                streak.last_completion_date,
                streak.exam_date,
            ),
        )


def update_streak_on_completion(db: Database, today: str) -> StudyStreak:
    """Advance the streak for a completion on `today` (YYYY-MM-DD).

    Counts at most once per calendar day: a consecutive day extends the
    streak, a gap restarts it at 1.
    """
    current = get_study_streak(db)

    if current.last_completion_date == today:
        return current

    if current.last_completion_date == previous_day(today):
        new_streak = current.current_streak + 1
    else:
        new_streak = 1

    updated = StudyStreak(
        current_streak=new_streak,
        longest_streak=max(current.longest_streak, new_streak),
        last_completion_date=today,
        exam_date=current.exam_date,
    )
    save_study_streak(db, updated)

    logger.info("streak.updated", current_streak=new_streak, day=today)
    return updated


def validate_streak(db: Database, today: str) -> StudyStreak:
    """Reset the current streak if neither today nor yesterday was completed."""
    current = get_study_streak(db)

    if current.last_completion_date is None:
        return current

    if current.last_completion_date in (today, previous_day(today)):
        return current

    if current.current_streak == 0:
        return current

    with db.get_db() as conn:
        conn.execute("UPDATE study_streak SET current_streak = 0 WHERE id = 1")

    logger.info("streak.broken", last_completion_date=current.last_completion_date)
    current.current_streak = 0
    return current


def set_exam_date(db: Database, exam_date: str | None) -> None:
    """Save the target exam date."""
    with db.get_db() as conn:
        conn.execute("UPDATE study_streak SET exam_date = ? WHERE id = 1", (exam_date,))
