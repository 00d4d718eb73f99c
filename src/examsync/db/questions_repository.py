"""Repository functions for the questions table (read-mostly question bank)."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from typing import Iterable

from examsync.db.database import Database
from examsync.utils.timestamps import utc_now_iso


@dataclass
class Question:
    """Question record from database."""

    id: str
    text: str
    type: str
    domain: str
    difficulty: str
    options: list[dict[str, str]] = field(default_factory=list)
    correct_answers: list[str] = field(default_factory=list)
    explanation: str = ""
    version: int = 1


def _row_to_record(row: sqlite3.Row) -> Question:
    return Question(
        id=row["id"],
        text=row["text"],
        type=row["type"],
        domain=row["domain"],
        difficulty=row["difficulty"],
        options=json.loads(row["options"]),
        correct_answers=json.loads(row["correct_answers"]),
        explanation=row["explanation"],
        version=row["version"],
    )


def upsert_questions(db: Database, questions: Iterable[Question]) -> int:
    """Insert or update questions. Returns the number written."""
    now = utc_now_iso()
    rows = [
        (
            q.id,
            q.text,
            q.type,
            q.domain,
            q.difficulty,
            json.dumps(q.options),
            json.dumps(q.correct_answers),
            q.explanation,
            q.version,
            now,
            now,
        )
        for q in questions
    ]

    with db.get_db() as conn:
        conn.executemany(
            """
            INSERT INTO questions (
                id, text, type, domain, difficulty, options, correct_answers,
                explanation, version, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                text = excluded.text, type = excluded.type, domain = excluded.domain,
                difficulty = excluded.difficulty, options = excluded.options,
                correct_answers = excluded.correct_answers,
                explanation = excluded.explanation, version = excluded.version,
                updated_at = excluded.updated_at
            """,
            rows,
        )

    return len(rows)


def get_questions_by_ids(db: Database, question_ids: Iterable[str]) -> dict[str, Question]:
    """Fetch questions keyed by id; unknown ids are simply absent."""
    ids = list(dict.fromkeys(question_ids))
    if not ids:
        return {}

    placeholders = ", ".join("?" for _ in ids)
    with db.get_db() as conn:
        rows = conn.execute(
            f"SELECT * FROM questions WHERE id IN ({placeholders})", ids
        ).fetchall()

    return {row["id"]: _row_to_record(row) for row in rows}
