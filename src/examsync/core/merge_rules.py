"""Merge rules for the singleton aggregates.

Pure functions: given a local and a remote value, return the merged value.
Both rules are commutative on the fields they treat as counters and
idempotent, so re-applying a pull never changes the result.
"""

from __future__ import annotations

from examsync.db.stats_repository import StudyStreak, UserStats
from examsync.utils.timestamps import later_timestamp


def merge_user_stats(local: UserStats, remote: UserStats) -> UserStats:
    """MAX-merge every counter; the later last-activity timestamp wins.

    Example:
        >>> merge_user_stats(UserStats(total_exams=3), UserStats(total_exams=2)).total_exams
        3
    """
    return UserStats(
        total_exams=max(local.total_exams, remote.total_exams),
        total_practice=max(local.total_practice, remote.total_practice),
        total_questions=max(local.total_questions, remote.total_questions),
        total_time_spent_ms=max(local.total_time_spent_ms, remote.total_time_spent_ms),
        last_activity_at=later_timestamp(local.last_activity_at, remote.last_activity_at),
    )


def merge_streak(local: StudyStreak, remote: StudyStreak) -> StudyStreak:
    """Merge two streaks.

    Rules:
    - longest_streak: max of both sides, unconditionally
    - current_streak and last_completion_date move together, taken from the
      side with the more recent completion date (local on a tie, since it may
      hold same-day activity the server has not seen)
    - with no dates on either side, current_streak is the max of both
    - exam_date: local if set, else remote
    """
    local_date = local.last_completion_date
    remote_date = remote.last_completion_date

    if local_date is None and remote_date is None:
        current = max(local.current_streak, remote.current_streak)
        last_date = None
    elif local_date is None:
        current, last_date = remote.current_streak, remote_date
    elif remote_date is None or local_date >= remote_date:
        current, last_date = local.current_streak, local_date
    else:
        current, last_date = remote.current_streak, remote_date

    return StudyStreak(
        current_streak=current,
        longest_streak=max(local.longest_streak, remote.longest_streak, current),
        last_completion_date=last_date,
        exam_date=local.exam_date if local.exam_date is not None else remote.exam_date,
    )
