"""Core business logic module.

Modules:
- scoring: Exam scoring and per-domain breakdown
- submission_tracker: Sync-tracked submission rows and their status transitions
- completion: Exam/practice completion flow
- merge_rules: MAX and recency merge rules for the singleton aggregates
- matching: Idempotency-key and composite-key record matching
- history: History reconciliation and exam review
"""

__all__ = [
    "scoring",
    "submission_tracker",
    "completion",
    "merge_rules",
    "matching",
    "history",
]
