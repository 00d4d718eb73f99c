"""Tests for stats and streak merge rules."""

import pytest

from examsync.core.merge_rules import merge_streak, merge_user_stats
from examsync.db.stats_repository import StudyStreak, UserStats


class TestMergeUserStats:
    """Tests for the MAX merge of activity counters."""

    def test_max_per_field(self):
        """Each counter takes the larger side independently."""
        local = UserStats(
            total_exams=3,
            total_practice=1,
            total_questions=50,
            total_time_spent_ms=1000,
            last_activity_at="2024-05-01T10:00:00.000+00:00",
        )
        remote = UserStats(
            total_exams=2,
            total_practice=4,
            total_questions=60,
            total_time_spent_ms=900,
            last_activity_at="2024-05-02T10:00:00.000+00:00",
        )

        merged = merge_user_stats(local, remote)

        assert merged == UserStats(
            total_exams=3,
            total_practice=4,
            total_questions=60,
            total_time_spent_ms=1000,
            last_activity_at="2024-05-02T10:00:00.000+00:00",
        )

    def test_missing_activity_loses(self):
        merged = merge_user_stats(
            UserStats(last_activity_at=None),
            UserStats(last_activity_at="2024-05-01T10:00:00.000+00:00"),
        )
        assert merged.last_activity_at == "2024-05-01T10:00:00.000+00:00"

    def test_idempotent(self):
        local = UserStats(total_exams=3, total_questions=10)
        remote = UserStats(total_exams=5, total_practice=2)
        once = merge_user_stats(local, remote)
        assert merge_user_stats(once, remote) == once

    def test_commutative(self):
        a = UserStats(total_exams=3, total_practice=7, last_activity_at="2024-05-01T10:00:00.000+00:00")
        b = UserStats(total_exams=5, total_practice=2, last_activity_at="2024-04-01T10:00:00.000+00:00")
        assert merge_user_stats(a, b) == merge_user_stats(b, a)


class TestMergeStreak:
    """Tests for the recency-based streak merge."""

    def test_local_more_recent(self):
        """Current streak follows the newer date; longest is the max of both."""
        local = StudyStreak(current_streak=5, longest_streak=5, last_completion_date="2024-05-01")
        remote = StudyStreak(current_streak=2, longest_streak=7, last_completion_date="2024-04-20")

        merged = merge_streak(local, remote)

        assert merged.current_streak == 5
        assert merged.longest_streak == 7
        assert merged.last_completion_date == "2024-05-01"

    def test_remote_more_recent(self):
        local = StudyStreak(current_streak=9, longest_streak=9, last_completion_date="2024-04-01")
        remote = StudyStreak(current_streak=1, longest_streak=3, last_completion_date="2024-05-01")

        merged = merge_streak(local, remote)

        assert merged.current_streak == 1
        assert merged.longest_streak == 9
        assert merged.last_completion_date == "2024-05-01"

    def test_tie_keeps_local(self):
        local = StudyStreak(current_streak=4, longest_streak=4, last_completion_date="2024-05-01")
        remote = StudyStreak(current_streak=3, longest_streak=4, last_completion_date="2024-05-01")
        assert merge_streak(local, remote).current_streak == 4

    def test_one_side_without_date(self):
        local = StudyStreak(current_streak=0, longest_streak=0)
        remote = StudyStreak(current_streak=2, longest_streak=2, last_completion_date="2024-05-01")
        merged = merge_streak(local, remote)
        assert merged.current_streak == 2
        assert merged.last_completion_date == "2024-05-01"

    def test_no_dates_takes_max(self):
        merged = merge_streak(StudyStreak(current_streak=1), StudyStreak(current_streak=3))
        assert merged.current_streak == 3
        assert merged.longest_streak == 3

    @pytest.mark.parametrize(
        "local_date, remote_date, expected",
        [
            ("2024-06-30", "2024-07-15", "2024-06-30"),
            (None, "2024-07-15", "2024-07-15"),
            (None, None, None),
        ],
    )
    def test_exam_date_prefers_local(self, local_date, remote_date, expected):
        merged = merge_streak(StudyStreak(exam_date=local_date), StudyStreak(exam_date=remote_date))
        assert merged.exam_date == expected

    def test_idempotent(self):
        local = StudyStreak(current_streak=5, longest_streak=5, last_completion_date="2024-05-01")
        remote = StudyStreak(current_streak=2, longest_streak=7, last_completion_date="2024-04-20")
        once = merge_streak(local, remote)
        assert merge_streak(once, remote) == once
