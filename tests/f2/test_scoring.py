"""Tests for exam scoring and domain breakdown."""

from dataclasses import dataclass

from examsync.config.app_config import ExamDomain
from examsync.core.scoring import DomainScore, calculate_domain_breakdown, score_answers


@dataclass
class _Answer:
    question_id: str
    is_correct: bool | None


@dataclass
class _Question:
    id: str
    domain: str


class TestScoreAnswers:
    """Tests for score_answers."""

    def test_all_correct(self):
        result = score_answers([_Answer("q1", True), _Answer("q2", True)], 2, 70)
        assert result.score == 100
        assert result.passed is True
        assert result.correct_count == 2

    def test_unanswered_count_as_wrong(self):
        """Missing answers reduce the score."""
        result = score_answers([_Answer("q1", True)], 4, 70)
        assert result.score == 25
        assert result.passed is False

    def test_unknown_correctness_is_not_correct(self):
        result = score_answers([_Answer("q1", None), _Answer("q2", True)], 2, 50)
        assert result.score == 50
        assert result.passed is True

    def test_rounding(self):
        result = score_answers([_Answer("q1", True), _Answer("q2", True)], 3, 70)
        assert result.score == 67

    def test_empty_exam(self):
        result = score_answers([], 0, 70)
        assert result.score == 0
        assert result.passed is False


class TestDomainBreakdown:
    """Tests for calculate_domain_breakdown."""

    def test_groups_by_question_domain(self):
        questions = {"q1": _Question("q1", "a"), "q2": _Question("q2", "a"), "q3": _Question("q3", "b")}
        answers = [_Answer("q1", True), _Answer("q2", False), _Answer("q3", True)]

        breakdown = calculate_domain_breakdown(answers, questions)

        assert breakdown == [DomainScore("a", 1, 2), DomainScore("b", 1, 1)]

    def test_blueprint_order_first(self):
        """Configured domains keep blueprint order; empty ones are dropped."""
        questions = {"q1": _Question("q1", "b"), "q2": _Question("q2", "a")}
        domains = [ExamDomain("a", "A"), ExamDomain("b", "B"), ExamDomain("c", "C")]

        breakdown = calculate_domain_breakdown(
            [_Answer("q1", True), _Answer("q2", True)], questions, domains
        )

        assert [d.domain_id for d in breakdown] == ["a", "b"]

    def test_unknown_questions_skipped(self):
        breakdown = calculate_domain_breakdown([_Answer("missing", True)], {})
        assert breakdown == []


class TestDomainScore:
    def test_percentage(self):
        assert DomainScore("a", 1, 3).percentage == 33
        assert DomainScore("a", 0, 0).percentage == 0

    def test_from_wire_shape(self):
        """Accepts the camelCase shape used on the wire."""
        assert DomainScore.from_dict({"domainId": "a", "correct": 2, "total": 5}) == DomainScore("a", 2, 5)
        assert DomainScore.from_dict(DomainScore("b", 1, 1).to_dict()) == DomainScore("b", 1, 1)
