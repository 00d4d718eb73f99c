"""Exam scoring and per-domain breakdown.

Pure functions over answers and questions; no storage access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

from examsync.config.app_config import ExamDomain


@dataclass(frozen=True)
class DomainScore:
    """Correct/total answers for one knowledge domain."""

    domain_id: str
    correct: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.correct / self.total * 100)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"domain_id": self.domain_id, "correct": self.correct, "total": self.total}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DomainScore:
        """Build from either the local (snake_case) or wire (camelCase) shape."""
        domain_id = data.get("domain_id", data.get("domainId"))
        return cls(
            domain_id=str(domain_id),
            correct=int(data.get("correct", 0)),
            total=int(data.get("total", 0)),
        )


@dataclass(frozen=True)
class ExamScore:
    """Result of scoring a completed exam."""

    score: int
    passed: bool
    correct_count: int
    total_questions: int


class ScorableAnswer(Protocol):
    question_id: str
    is_correct: bool | None


class DomainTagged(Protocol):
    id: str
    domain: str


def score_answers(
    answers: Iterable[ScorableAnswer],
    total_questions: int,
    passing_score: int,
) -> ExamScore:
    """Score an exam. Unanswered questions count as incorrect.

    Args:
        answers: Answers recorded for the attempt
        total_questions: Number of questions in the exam
        passing_score: Minimum score (0-100) to pass

    Returns:
        ExamScore with score rounded to the nearest integer
    """
    correct = sum(1 for a in answers if a.is_correct is True)
    score = round(correct / total_questions * 100) if total_questions > 0 else 0
    return ExamScore(
        score=score,
        passed=score >= passing_score,
        correct_count=correct,
        total_questions=total_questions,
    )


def calculate_domain_breakdown(
    answers: Iterable[ScorableAnswer],
    questions_by_id: Mapping[str, DomainTagged],
    domains: Iterable[ExamDomain] = (),
) -> list[DomainScore]:
    """Aggregate answers by the domain of their question.

    Configured domains come first in blueprint order; domains only seen on
    questions follow in first-seen order. Domains without any answered
    question are omitted, as are answers whose question is unknown locally.
    """
    totals: dict[str, list[int]] = {d.id: [0, 0] for d in domains}

    for answer in answers:
        question = questions_by_id.get(answer.question_id)
        if question is None:
            continue
        bucket = totals.setdefault(question.domain, [0, 0])
        bucket[1] += 1
        if answer.is_correct is True:
            bucket[0] += 1

    return [
        DomainScore(domain_id=domain_id, correct=correct, total=total)
        for domain_id, (correct, total) in totals.items()
        if total > 0
    ]
