"""Key/value bookkeeping for sync state that must survive restarts."""

from __future__ import annotations

from examsync.db.database import Database
from examsync.utils.timestamps import utc_now_iso

LAST_SYNC_AT = "last_sync_at"
LAST_SYNC_ERROR = "last_sync_error"


def get_meta(db: Database, key: str) -> str | None:
    with db.get_db() as conn:
        row = conn.execute("SELECT value FROM sync_meta WHERE key = ?", (key,)).fetchone()

    return row["value"] if row else None


def set_meta(db: Database, key: str, value: str | None) -> None:
    """Store a value; None removes the key."""
    with db.get_db() as conn:
        if value is None:
            conn.execute("DELETE FROM sync_meta WHERE key = ?", (key,))
        else:
            conn.execute(
                "INSERT INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at",
                (key, value, utc_now_iso()),
            )
