"""Tests for database schema and connection management (F1)."""

import sqlite3

import pytest

from examsync.db.attempts_repository import (
    ActiveAttemptExistsError,
    ExamAnswer,
    create_attempt,
    save_answer,
)
from examsync.db.database import Database
from examsync.db.stats_repository import get_study_streak, get_user_stats, increment_exam_count
from examsync.db.submissions_repository import (
    ExamSubmission,
    SyncStatus,
    insert_submission,
    list_submissions,
)
from examsync.db.questions_repository import Question, get_questions_by_ids, upsert_questions
from examsync.db.sync_meta_repository import get_meta, set_meta


def _submission(submission_id: str, local_id: str | None = None) -> ExamSubmission:
    return ExamSubmission(
        id=submission_id,
        local_id=local_id,
        exam_type_id="CLF-C02",
        score=80,
        passed=True,
        duration=600,
        submitted_at="2024-05-01T10:00:00.000+00:00",
        created_at="2024-05-01T10:00:00.000+00:00",
    )


class TestInitDb:
    """Tests for schema creation."""

    def test_creates_tables(self, db):
        """All tables exist after init."""
        with db.get_db() as conn:
            names = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        assert {
            "questions",
            "exam_attempts",
            "exam_answers",
            "exam_submissions",
            "user_stats",
            "study_streak",
            "sync_meta",
        } <= names

    def test_init_is_idempotent(self, db):
        """Running init twice keeps data."""
        insert_submission(db, _submission("s1", "s1"))
        db.init_db()
        assert len(list_submissions(db)) == 1

    def test_singletons_exist(self, db):
        """Stats and streak rows are created with zero values."""
        stats = get_user_stats(db)
        streak = get_study_streak(db)
        assert stats.total_exams == 0
        assert stats.last_activity_at is None
        assert streak.current_streak == 0
        assert streak.last_completion_date is None

    def test_creates_parent_directory(self, tmp_path):
        """Database file can live in a directory that does not exist yet."""
        database = Database(tmp_path / "nested" / "dir" / "store.db")
        database.init_db()
        assert database.db_path.exists()


class TestGetDb:
    """Tests for the connection context manager."""

    def test_rolls_back_on_error(self, db):
        """A failing block leaves no partial writes."""
        with pytest.raises(RuntimeError):
            with db.get_db() as conn:
                conn.execute(
                    "INSERT INTO sync_meta (key, value, updated_at) VALUES ('k', 'v', 'now')"
                )
                raise RuntimeError("boom")

        assert get_meta(db, "k") is None

    def test_local_id_is_unique(self, db):
        """Two rows can never share an idempotency key."""
        insert_submission(db, _submission("s1", "key-1"))
        assert insert_submission(db, _submission("s2", "key-1")) is False
        assert [s.id for s in list_submissions(db)] == ["s1"]

    def test_single_in_progress_attempt_enforced_by_schema(self, db):
        """The partial unique index rejects a second in-progress row."""
        create_attempt(db, total_questions=5, time_limit_ms=1000)
        with pytest.raises(sqlite3.IntegrityError):
            with db.get_db() as conn:
                conn.execute(
                    "INSERT INTO exam_attempts (id, started_at, status, total_questions, "
                    "remaining_time_ms, expires_at) VALUES ('x', 'now', 'in-progress', 1, 1, 'now')"
                )

    def test_create_attempt_reports_active_attempt(self, db):
        """Repository raises a typed error for a second start."""
        first = create_attempt(db, total_questions=5, time_limit_ms=1000)
        with pytest.raises(ActiveAttemptExistsError) as exc_info:
            create_attempt(db, total_questions=5, time_limit_ms=1000)
        assert exc_info.value.attempt_id == first.id


class TestClearUserData:
    """Tests for clear_user_data (sign-out)."""

    def test_clears_user_rows_keeps_questions(self, db):
        """User data is wiped, the question bank survives."""
        upsert_questions(
            db,
            [Question(id="q1", text="?", type="SINGLE_CHOICE", domain="d", difficulty="EASY")],
        )
        attempt = create_attempt(db, total_questions=1, time_limit_ms=1000)
        save_answer(db, ExamAnswer(exam_attempt_id=attempt.id, question_id="q1", order_index=0))
        insert_submission(db, _submission("s1", "s1"))
        increment_exam_count(db, time_spent_ms=100, questions_count=1)
        set_meta(db, "last_sync_at", "2024-05-01T10:00:00.000+00:00")

        db.clear_user_data()

        assert list_submissions(db) == []
        assert get_user_stats(db).total_exams == 0
        assert get_meta(db, "last_sync_at") is None
        assert "q1" in get_questions_by_ids(db, ["q1"])


class TestSyncMeta:
    """Tests for sync_meta key/value rows."""

    def test_set_and_get(self, db):
        set_meta(db, "last_sync_error", "offline")
        assert get_meta(db, "last_sync_error") == "offline"

    def test_overwrite(self, db):
        set_meta(db, "k", "a")
        set_meta(db, "k", "b")
        assert get_meta(db, "k") == "b"

    def test_none_deletes(self, db):
        set_meta(db, "k", "a")
        set_meta(db, "k", None)
        assert get_meta(db, "k") is None


class TestSyncStatusValues:
    def test_status_round_trips_through_row(self, db):
        """Status is stored as its string value."""
        insert_submission(db, _submission("s1", "s1"))
        assert list_submissions(db)[0].sync_status is SyncStatus.PENDING
