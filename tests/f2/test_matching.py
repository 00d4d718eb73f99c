"""Tests for two-stage record matching."""

from examsync.core.matching import (
    CompositeKey,
    find_attempt_match,
    find_submission_match,
    select_composite_match,
)
from examsync.db.attempts_repository import complete_attempt, create_attempt
from examsync.db.submissions_repository import ExamSubmission, insert_submission

T0 = "2024-05-01T10:00:00.000+00:00"


def _submission(
    submission_id: str,
    local_id: str | None,
    submitted_at: str = T0,
    score: float = 80,
    passed: bool = True,
) -> ExamSubmission:
    return ExamSubmission(
        id=submission_id,
        local_id=local_id,
        exam_type_id="CLF-C02",
        score=score,
        passed=passed,
        duration=600,
        submitted_at=submitted_at,
        created_at=submitted_at,
    )


class TestCompositeKey:
    """Tests for the composite match policy."""

    def test_within_tolerance(self):
        a = CompositeKey(80, True, T0, "CLF-C02")
        b = CompositeKey(80, True, "2024-05-01T10:00:00.400+00:00", "CLF-C02")
        assert a.matches(b, 1.0)

    def test_tolerance_is_strict(self):
        """A delta equal to the tolerance is not a match."""
        a = CompositeKey(80, True, T0)
        b = CompositeKey(80, True, "2024-05-01T10:00:01.000+00:00")
        assert not a.matches(b, 1.0)

    def test_score_and_pass_must_agree(self):
        base = CompositeKey(80, True, T0)
        assert not base.matches(CompositeKey(81, True, T0), 1.0)
        assert not base.matches(CompositeKey(80, False, T0), 1.0)

    def test_exam_type_only_when_both_known(self):
        base = CompositeKey(80, True, T0, "CLF-C02")
        assert not base.matches(CompositeKey(80, True, T0, "SAA-C03"), 1.0)
        assert base.matches(CompositeKey(80, True, T0, None), 1.0)

    def test_accepts_zulu_timestamps(self):
        a = CompositeKey(80, True, T0)
        assert a.matches(CompositeKey(80, True, "2024-05-01T10:00:00.200Z"), 1.0)


class TestSelectCompositeMatch:
    def test_closest_wins(self):
        far = _submission("far", None, "2024-05-01T10:00:00.800+00:00")
        near = _submission("near", None, "2024-05-01T10:00:00.100+00:00")
        picked = select_composite_match([far, near], CompositeKey(80, True, T0, "CLF-C02"), 1.0)
        assert picked.id == "near"

    def test_no_candidate(self):
        assert select_composite_match([], CompositeKey(80, True, T0), 1.0) is None


class TestFindSubmissionMatch:
    """Tests for the storage-backed two-stage lookup."""

    def test_key_match_by_local_id(self, db):
        insert_submission(db, _submission("srv-1", "k1"))
        match = find_submission_match(db, "k1", CompositeKey(0, False, T0), True, 1.0)
        assert match.submission.id == "srv-1"
        assert match.matched_by == "local_id"

    def test_key_match_by_id(self, db):
        insert_submission(db, _submission("k1", "k1"))
        match = find_submission_match(db, "k1", CompositeKey(0, False, T0), True, 1.0)
        assert match.matched_by == "id"

    def test_composite_fallback(self, db):
        insert_submission(db, _submission("local-1", "local-1"))
        key = CompositeKey(80, True, "2024-05-01T10:00:00.500+00:00", "CLF-C02")
        match = find_submission_match(db, "srv-9", key, True, 1.0)
        assert match.submission.id == "local-1"
        assert match.matched_by == "composite"

    def test_composite_disabled(self, db):
        """Records that carry a key never match by composite."""
        insert_submission(db, _submission("local-1", "local-1"))
        key = CompositeKey(80, True, T0, "CLF-C02")
        assert find_submission_match(db, "other-key", key, False, 1.0) is None


class TestFindAttemptMatch:
    def test_by_id(self, db):
        attempt = create_attempt(db, 4, 1000, attempt_id="a1")
        assert find_attempt_match(db, "a1", CompositeKey(0, False, T0), 1.0).id == attempt.id

    def test_by_composite(self, db):
        create_attempt(db, 4, 1000, attempt_id="a1", started_at="2024-05-01T09:50:00.000+00:00")
        complete_attempt(db, "a1", 80, True, completed_at=T0)
        match = find_attempt_match(
            db, "srv-1", CompositeKey(80, True, "2024-05-01T10:00:00.300+00:00"), 1.0
        )
        assert match.id == "a1"

    def test_none(self, db):
        assert find_attempt_match(db, "x", CompositeKey(80, True, T0), 1.0) is None
