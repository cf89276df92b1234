from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 string with Z (seconds precision)."""
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return to_iso(utcnow())


def iso_after_seconds(seconds: float) -> str:
    return to_iso(utcnow() + timedelta(seconds=seconds))


def parse_feed_timestamp(value: str | None) -> datetime | None:
    """Parse an Atom `updated`/`published` value into an aware datetime.

    EDGAR emits offsets like 2024-05-01T16:02:11-04:00; the offset is kept so the
    calendar date stays the one the feed shows. Naive values are taken as UTC.
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
