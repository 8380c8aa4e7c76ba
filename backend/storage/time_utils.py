from __future__ import annotations

from datetime import datetime, timedelta, timezone

_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    # Fixed-width so stored timestamps sort lexicographically.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_ISO_FORMAT)


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_stamp(previous: str | None) -> str:
    """Return a timestamp strictly later than ``previous``."""
    now = utc_now()
    last = parse_iso(previous)
    if last is not None and now <= last:
        now = last + timedelta(microseconds=1)
    return to_iso(now)
