"""Fixtures for F2 tests - scoring, merge rules, matching and completion."""

import pytest

from examsync.core.completion import ExamCompletionService
from examsync.core.submission_tracker import SubmissionTracker
from examsync.db.questions_repository import Question, upsert_questions


@pytest.fixture
def question_bank(db) -> list[Question]:
    """Four questions over two domains."""
    questions = [
        Question(
            id=f"q{i}",
            text=f"Question {i}?",
            type="SINGLE_CHOICE",
            domain="cloud-concepts" if i <= 2 else "security-compliance",
            difficulty="EASY",
            options=[{"id": "a", "text": "A"}, {"id": "b", "text": "B"}],
            correct_answers=["a"],
            explanation=f"Because {i}.",
        )
        for i in range(1, 5)
    ]
    upsert_questions(db, questions)
    return questions


@pytest.fixture
def tracker(db) -> SubmissionTracker:
    return SubmissionTracker(db)


@pytest.fixture
def completion(db, tracker, exam_config) -> ExamCompletionService:
    return ExamCompletionService(db, tracker, exam_config)
