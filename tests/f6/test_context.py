"""Tests for app context wiring."""

from examsync.context import build_context
from examsync.db.stats_repository import StudyStreak, get_study_streak, save_study_streak
from examsync.utils.timestamps import previous_day, today_iso


class TestBuildContext:
    """Tests for session start."""

    def test_broken_streak_reset_on_load(self, db, app_config, token_provider, http_client):
        save_study_streak(db, StudyStreak(current_streak=4, longest_streak=6, last_completion_date="2020-01-01"))

        context = build_context(config=app_config, token_provider=token_provider, http_client=http_client)

        streak = get_study_streak(context.db)
        assert streak.current_streak == 0
        assert streak.longest_streak == 6
        assert streak.last_completion_date == "2020-01-01"

    def test_streak_from_yesterday_kept(self, db, app_config, token_provider, http_client):
        yesterday = previous_day(today_iso())
        save_study_streak(db, StudyStreak(current_streak=4, longest_streak=6, last_completion_date=yesterday))

        context = build_context(config=app_config, token_provider=token_provider, http_client=http_client)

        assert get_study_streak(context.db).current_streak == 4

    def test_uses_configured_database(self, app_config, token_provider, http_client):
        context = build_context(config=app_config, token_provider=token_provider, http_client=http_client)
        assert str(context.db.db_path) == app_config.paths["db_path"]
