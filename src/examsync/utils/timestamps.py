"""Timestamp helpers.

All persisted timestamps are ISO 8601 strings in UTC. Calendar dates
(streak days, target exam date) are plain YYYY-MM-DD strings.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current time as an ISO 8601 string."""
    return to_iso(utc_now())


def to_iso(value: datetime) -> str:
    """Format a datetime as ISO 8601 in UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts a trailing 'Z' and naive values (treated as UTC).

    Raises:
        ValueError: If value is not a valid ISO 8601 timestamp
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: str) -> str:
    """Re-format any accepted ISO 8601 timestamp into the canonical form."""
    return to_iso(parse_timestamp(value))


def seconds_between(a: str, b: str) -> float:
    """Absolute distance in seconds between two timestamps."""
    return abs((parse_timestamp(a) - parse_timestamp(b)).total_seconds())


def later_timestamp(a: str | None, b: str | None) -> str | None:
    """Return the later of two timestamps; a missing value loses."""
    if a is None:
        return b
    if b is None:
        return a
    return b if parse_timestamp(b) > parse_timestamp(a) else a


def today_iso() -> str:
    """Today's calendar date (UTC) as YYYY-MM-DD."""
    return utc_now().date().isoformat()


def previous_day(day: str) -> str:
    """Calendar day before a YYYY-MM-DD date."""
    return (date.fromisoformat(day) - timedelta(days=1)).isoformat()
