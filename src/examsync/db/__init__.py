"""Database module for SQLite persistence.

Provides:
- Database connection management and schema initialization
- Repository functions for submissions, attempts/answers, stats/streak,
  questions and sync bookkeeping
"""

from examsync.db.database import Database

__all__ = ["Database"]
