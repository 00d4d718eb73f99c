"""SQLite database connection and schema management.

Provides connection management and schema initialization for the local
record store. Each Database instance owns its file path; there is no
process-wide connection.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("data/examsync.db")


class Database:
    """Handle on the local SQLite store."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path is not None else DEFAULT_DB_PATH

    def init_db(self) -> None:
        """Initialize database with schema.

        Creates the database file and all required tables if they don't exist.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.get_db() as conn:
            _create_schema(conn)

        logger.info("database.initialized", path=str(self.db_path))

    @contextmanager
    def get_db(self) -> Generator[sqlite3.Connection, None, None]:
        """Get database connection as context manager.

        Commits on success, rolls back if the block raises.

        Example:
            with db.get_db() as conn:
                rows = conn.execute("SELECT * FROM exam_submissions").fetchall()
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def clear_user_data(self) -> None:
        """Delete user-scoped rows, keeping the question bank.

        Used on sign-out. Aggregates are reset to their zero rows.
        """
        with self.get_db() as conn:
            conn.executescript(
                """
                DELETE FROM exam_answers;
                DELETE FROM exam_submissions;
                DELETE FROM exam_attempts;
                DELETE FROM sync_meta;
                UPDATE user_stats
                   SET total_exams = 0, total_practice = 0, total_questions = 0,
                       total_time_spent_ms = 0, last_activity_at = NULL
                 WHERE id = 1;
                UPDATE study_streak
                   SET current_streak = 0, longest_streak = 0, last_completion_date = NULL
                 WHERE id = 1;
                """
            )

        logger.info("database.user_data_cleared", path=str(self.db_path))


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        -- Reference data (read-mostly question bank)
        CREATE TABLE IF NOT EXISTS questions (
            id TEXT PRIMARY KEY,
            text TEXT NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('SINGLE_CHOICE', 'MULTIPLE_CHOICE', 'TRUE_FALSE')),
            domain TEXT NOT NULL,
            difficulty TEXT NOT NULL CHECK(difficulty IN ('EASY', 'MEDIUM', 'HARD')),
            options TEXT NOT NULL DEFAULT '[]',
            correct_answers TEXT NOT NULL DEFAULT '[]',
            explanation TEXT NOT NULL DEFAULT '',
            version INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        -- Working state of an exam session
        CREATE TABLE IF NOT EXISTS exam_attempts (
            id TEXT PRIMARY KEY,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            status TEXT NOT NULL DEFAULT 'in-progress'
                CHECK(status IN ('in-progress', 'completed', 'abandoned')),
            score REAL,
            passed INTEGER,
            total_questions INTEGER NOT NULL,
            remaining_time_ms INTEGER NOT NULL,
            expires_at TEXT NOT NULL
        );

        -- Answers are not tied to the local question bank: restored
        -- answers may reference questions this device never downloaded.
        CREATE TABLE IF NOT EXISTS exam_answers (
            id TEXT PRIMARY KEY,
            exam_attempt_id TEXT NOT NULL,
            question_id TEXT NOT NULL,
            selected_answers TEXT NOT NULL DEFAULT '[]',
            is_correct INTEGER,
            is_flagged INTEGER NOT NULL DEFAULT 0,
            order_index INTEGER NOT NULL,
            answered_at TEXT,
            FOREIGN KEY (exam_attempt_id) REFERENCES exam_attempts(id) ON DELETE CASCADE,
            UNIQUE (exam_attempt_id, question_id)
        );

        -- Canonical, sync-tracked summary of a completed exam
        CREATE TABLE IF NOT EXISTS exam_submissions (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            exam_type_id TEXT NOT NULL,
            score REAL NOT NULL,
            passed INTEGER NOT NULL,
            duration INTEGER NOT NULL,
            submitted_at TEXT NOT NULL,
            created_at TEXT NOT NULL,
            sync_status TEXT NOT NULL DEFAULT 'PENDING'
                CHECK(sync_status IN ('PENDING', 'SYNCED', 'FAILED', 'LOCAL')),
            sync_retries INTEGER NOT NULL DEFAULT 0,
            synced_at TEXT,
            local_id TEXT UNIQUE,
            domain_scores TEXT
        );

        -- Singleton aggregates
        CREATE TABLE IF NOT EXISTS user_stats (
            id INTEGER PRIMARY KEY DEFAULT 1 CHECK(id = 1),
            total_exams INTEGER NOT NULL DEFAULT 0,
            total_practice INTEGER NOT NULL DEFAULT 0,
            total_questions INTEGER NOT NULL DEFAULT 0,
            total_time_spent_ms INTEGER NOT NULL DEFAULT 0,
            last_activity_at TEXT
        );
        INSERT OR IGNORE INTO user_stats (id) VALUES (1);

        CREATE TABLE IF NOT EXISTS study_streak (
            id INTEGER PRIMARY KEY DEFAULT 1 CHECK(id = 1),
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_completion_date TEXT,
            exam_date TEXT
        );
        INSERT OR IGNORE INTO study_streak (id) VALUES (1);

        CREATE TABLE IF NOT EXISTS sync_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        -- Indexes
        CREATE INDEX IF NOT EXISTS idx_questions_domain ON questions(domain);
        CREATE INDEX IF NOT EXISTS idx_exam_attempts_status ON exam_attempts(status);
        CREATE UNIQUE INDEX IF NOT EXISTS idx_exam_attempts_single_in_progress
            ON exam_attempts(status) WHERE status = 'in-progress';
        CREATE INDEX IF NOT EXISTS idx_exam_answers_attempt ON exam_answers(exam_attempt_id);
        CREATE INDEX IF NOT EXISTS idx_exam_submissions_status ON exam_submissions(sync_status);
        CREATE INDEX IF NOT EXISTS idx_exam_submissions_submitted_at
            ON exam_submissions(submitted_at);
        """
    )
